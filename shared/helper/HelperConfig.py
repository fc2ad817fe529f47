"""Central configuration helper for the document index bridge."""

import logging
import os

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


class HelperConfig:
    """Reads every setting of the bridge from environment variables.

    Keys are case-insensitive and an empty or blank variable counts as unset.
    Each getter raises ValueError when a variable is unset and no default is
    given, or when the value cannot be parsed.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_raw(self, key: str) -> str | None:
        raw = os.getenv(key.upper())
        if raw is None or not raw.strip():
            return None
        return raw.strip()

    def get_string_val(self, key: str, default: str | None = None) -> str:
        """Read a string setting.

        Args:
            key (str): Environment variable name.
            default (str | None): Value used if the variable is not set.

        Returns:
            str: The stripped value or the default.
        """
        raw = self._get_raw(key)
        if raw is not None:
            return raw
        if default is None:
            raise ValueError(f"Environment variable '{key.upper()}' is not set.")
        return default

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Read a numeric setting. Whole numbers come back as int, everything else as float.

        Args:
            key (str): Environment variable name.
            default (float | int | None): Value used if the variable is not set.

        Returns:
            float | int: The parsed value or the default.
        """
        raw = self._get_raw(key)
        if raw is None:
            if default is None:
                raise ValueError(f"Environment variable '{key.upper()}' is not set.")
            return default
        try:
            return int(raw)
        except ValueError:
            pass
        try:
            return float(raw)
        except ValueError:
            raise ValueError(f"Environment variable '{key.upper()}' is not a valid number: '{raw}'.") from None

    def get_int_val(self, key: str, default: int | None = None, minimum: int | None = None) -> int:
        """Read an integer setting, optionally enforcing a lower bound.

        Args:
            key (str): Environment variable name.
            default (int | None): Value used if the variable is not set.
            minimum (int | None): Smallest accepted value.

        Returns:
            int: The resolved value.

        Raises:
            ValueError: If the value is missing, not a whole number, or below minimum.
        """
        val = self.get_number_val(key, default=default)
        if int(val) != val:
            raise ValueError(f"Environment variable '{key.upper()}' must be a whole number, got '{val}'.")
        val = int(val)
        if minimum is not None and val < minimum:
            raise ValueError(f"Environment variable '{key.upper()}' must be >= {minimum}, got {val}.")
        return val

    def get_float_val(self, key: str, default: float | None = None, minimum: float | None = None) -> float:
        """Read a float setting such as a delay in seconds, optionally enforcing a lower bound."""
        val = float(self.get_number_val(key, default=default))
        if minimum is not None and val < minimum:
            raise ValueError(f"Environment variable '{key.upper()}' must be >= {minimum}, got {val}.")
        return val

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        """Read a boolean setting: true/1/yes/on or false/0/no/off.

        Args:
            key (str): Environment variable name.
            default (bool | None): Value used if the variable is not set.

        Returns:
            bool: The parsed value or the default.

        Raises:
            ValueError: If the variable is not set without default, or holds another word.
        """
        raw = self._get_raw(key)
        if raw is None:
            if default is None:
                raise ValueError(f"Environment variable '{key.upper()}' is not set.")
            return default
        if raw.lower() in _TRUE_VALUES:
            return True
        if raw.lower() in _FALSE_VALUES:
            return False
        raise ValueError(f"Environment variable '{key.upper()}' is not a boolean: '{raw}'.")

    def get_logger(self) -> logging.Logger:
        """The application logger shared by all components."""
        return self._logger
