"""Resolves the engine class of a client type from its configured engine name.

Engines live in shared.clients.<type>.<engine>.<Prefix><Engine>, e.g.
RAG_ENGINE=qdrant loads shared.clients.rag.qdrant.RAGClientQdrant.
"""

import importlib


def load_engine_class(package: str, class_prefix: str, engine: str) -> type:
    """
    Import the class implementing an engine.

    Args:
        package (str): Client package, e.g. "shared.clients.embed".
        class_prefix (str): Class name prefix, e.g. "EmbedClient".
        engine (str): Engine name as configured, any case, e.g. "OLLAMA".

    Returns:
        type: The engine class, e.g. EmbedClientOllama.

    Raises:
        ValueError: If the engine is empty or no such class exists.
    """
    engine = engine.strip().lower()
    if not engine:
        raise ValueError(f"No engine configured for {package}.")
    class_name = f"{class_prefix}{engine.capitalize()}"
    try:
        module = importlib.import_module(f"{package}.{engine}.{class_name}")
        return getattr(module, class_name)
    except (ImportError, AttributeError) as e:
        raise ValueError(f"Unsupported engine '{engine}' for {package}: {e}") from e
