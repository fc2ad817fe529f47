"""Common base of the HTTP backed clients (embedding providers, vector databases)."""

from abc import ABC, abstractmethod
import time
from typing import Any

import httpx
from httpx._types import QueryParamTypes, RequestContent

from shared.clients.errors import BackendRequestError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class ClientInterface(ABC):
    """Base class of every HTTP backed client.

    A client owns one httpx.AsyncClient between boot() and close(). Its settings
    live in environment variables named {CLIENT_TYPE}_{ENGINE}_{KEY}, e.g.
    "RAG_QDRANT_BASE_URL". Every engine needs a BASE_URL; the other keys are
    declared by the engine in _get_required_config().
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self.timeout = helper_config.get_float_val(f"{self.get_client_type().upper()}_TIMEOUT", default=30.0, minimum=0.1)

        self.validate_full_configuration()
        self._base_url = self._read_base_url()
        self._client: httpx.AsyncClient | None = None

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_full_configuration(self) -> None:
        """
        Read every declared setting once so that a missing value fails at construction time.

        Raises:
            ValueError: If a required setting is missing or cannot be parsed.
        """
        for config in [EnvConfig(env_key="BASE_URL", val_type="string"), *self._get_required_config()]:
            _ = self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)

    def is_booted(self) -> bool:
        return self._client is not None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def get_client_type(self) -> str:
        """Lowercase client type, e.g. "rag" or "embed"."""
        return self._get_client_type().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        pass

    def get_engine_name(self) -> str:
        """Lowercase engine name, e.g. "qdrant" or "ollama"."""
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        pass

    ################ CONFIG ##################
    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        """
        Engine specific settings besides BASE_URL.

        Returns:
            list[EnvConfig]: One entry per setting, default None marks it as required.
        """
        pass

    def _get_config_key_name(self, raw_key: str) -> str:
        """
        Returns:
            str: The environment variable of a setting, e.g. "API_KEY" -> "RAG_QDRANT_API_KEY".
        """
        return f"{self.get_client_type().upper()}_{self.get_engine_name().upper()}_{raw_key.upper()}"

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """
        Read one engine setting.

        Args:
            raw_key (str): Setting name without the client prefix, e.g. "BASE_URL".
            default (Any): Value used when the variable is not set. None makes the setting required.
            val_type (str): "string", "number", "int", "float" or "bool".

        Raises:
            ValueError: If the value is missing without default, or val_type is unsupported.
        """
        key = self._get_config_key_name(raw_key)
        readers = {
            "string": self._helper_config.get_string_val,
            "number": self._helper_config.get_number_val,
            "int": self._helper_config.get_int_val,
            "float": self._helper_config.get_float_val,
            "bool": self._helper_config.get_bool_val,
        }
        if val_type not in readers:
            raise ValueError(f"Unsupported config value type '{val_type}' for {key}.")
        return readers[val_type](key, default=default)

    def _read_base_url(self) -> str:
        base_url = self.get_config_val("BASE_URL", val_type="string").rstrip("/")
        if not base_url.startswith(("http://", "https://")):
            raise ValueError(f"{self._get_config_key_name('BASE_URL')} must start with http:// or https://, got '{base_url}'.")
        return base_url

    def get_base_url(self) -> str:
        """Backend base URL without trailing slash, e.g. "http://localhost:6333"."""
        return self._base_url

    ################ AUTH ##################
    @abstractmethod
    def _get_auth_header(self) -> dict:
        """
        Headers that authenticate against the backend, empty if no key is configured.
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_healthcheck(self) -> str:
        """
        Path answered with 2xx while the backend is up, e.g. "/healthz".
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self) -> httpx.Response:
        """Check that the backend answers.

        Raises:
            BackendRequestError: If the backend answers with an error status.
            httpx.TransportError: If the backend is unreachable.
        """
        return await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck(), raise_on_error=True)

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Open the HTTP client.

        Args:
            transport (httpx.AsyncBaseTransport | None): Transport override, e.g. httpx.MockTransport in tests.
        """
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)
        self.logging.debug("%s client '%s' booted for %s", self.get_client_type().upper(), self.get_engine_name(), self._base_url)

    async def close(self) -> None:
        """Close the HTTP client. Safe to call twice."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def do_request(
        self,
        method: str = "GET",
        content: RequestContent | None = None,
        json: dict | None = None,
        params: QueryParamTypes | None = None,
        endpoint: str = "",
        additional_headers: dict | None = None,
        raise_on_error: bool = False,
    ) -> httpx.Response:
        """Send one request to the backend.

        Args:
            method: HTTP method.
            content: Raw body. Takes precedence over json.
            json: JSON body.
            params: URL query parameters.
            endpoint: Path appended to the base URL.
            additional_headers: Extra headers, override the auth header.
            raise_on_error: Raise on a status >= 300 instead of returning the response.

        Returns:
            The raw httpx.Response.

        Raises:
            Exception: If boot() was not called.
            BackendRequestError: On a status >= 300 when raise_on_error is set.
            httpx.TransportError: On network failures and timeouts.
        """
        if self._client is None:
            raise Exception("HTTP client not initialised. Call boot() before making requests.")

        url = self._base_url
        if endpoint.strip():
            url = f"{url}/{endpoint.strip().lstrip('/')}"

        # httpx picks the content type for json bodies
        headers = {**self._get_auth_header(), **(additional_headers or {})}
        body: dict = {"content": content} if content is not None else {"json": json} if json is not None else {}

        started = time.monotonic()
        response = await self._client.request(method, url, headers=headers, params=params, timeout=self.timeout, **body)
        self.logging.debug(
            "%s %s -> %d in %.0f ms", method, url, response.status_code, (time.monotonic() - started) * 1000
        )

        if raise_on_error and response.status_code >= 300:
            self.logging.error("Request to %s failed with status %d: %s", url, response.status_code, response.text[:500])
            raise BackendRequestError(
                f"Request to {url} failed with status {response.status_code}",
                status_code=response.status_code,
                url=url,
                body=response.text[:500],
            )
        return response
