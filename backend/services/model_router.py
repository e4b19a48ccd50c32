"""
Model Router for the tutoring-agent backend.

Maps a requested model identifier to a registered inference client using an
ordered set of rules: exact name, substring match in either direction, the
configured default model, then any registered client.
"""

import logging
import threading
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ModelNotFoundError(Exception):
    """Raised when no inference client can serve a request."""


class ModelRegistry:
    """
    Thread-safe mapping from model name to inference client.

    Populated once at startup. The only mutation expected while serving requests
    is ``ensure_default`` registering the fallback client.
    """

    def __init__(self, clients: Optional[Dict[str, Any]] = None):
        self._lock = threading.RLock()
        self._clients: Dict[str, Any] = dict(clients or {})

    def register(self, name: str, client: Any) -> None:
        if not name:
            raise ValueError("Model name cannot be empty")
        with self._lock:
            self._clients[name] = client
        logger.info(f"Registered model: {name}")

    def get(self, name: str) -> Optional[Any]:
        with self._lock:
            return self._clients.get(name)

    def ensure_default(self, name: str, factory: Callable[[], Any]) -> Any:
        """Return the client for ``name``, creating it with ``factory`` if absent."""
        with self._lock:
            client = self._clients.get(name)
            if client is None:
                client = factory()
                self._clients[name] = client
                logger.info(f"Registered default model: {name}")
            return client

    def items(self) -> List[Tuple[str, Any]]:
        """Snapshot of (name, client) pairs in registration order."""
        with self._lock:
            return list(self._clients.items())

    def names(self) -> List[str]:
        with self._lock:
            return list(self._clients)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._clients

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())


def resolve_model(requested_name: str, registry: ModelRegistry, default_name: str) -> Optional[Any]:
    """
    Resolve a requested model name to a registered client.

    Resolution order (first match wins):
    1. Exact name
    2. A registered name contained in the request, or containing it
       (first in registration order)
    3. The default model, if registered
    4. The first registered client
    5. None when the registry is empty

    Args:
        requested_name: Model name requested by the agent
        registry: Registered clients
        default_name: Configured default model name

    Returns:
        The client handle, or None if nothing is registered
    """
    snapshot = registry.items()
    clients = dict(snapshot)

    if requested_name in clients:
        return clients[requested_name]

    if requested_name:
        for name, client in snapshot:
            if name in requested_name or requested_name in name:
                logger.info(f"Matched model '{requested_name}' to '{name}'")
                return client

    if default_name in clients:
        logger.info(f"Model '{requested_name}' not found, using default: {default_name}")
        return clients[default_name]

    if snapshot:
        name, client = snapshot[0]
        logger.warning(f"Model '{requested_name}' not found and default '{default_name}' missing, using: {name}")
        return client

    logger.error(f"No models registered, cannot serve '{requested_name}'")
    return None


class ModelRouter:
    """Routes agent model names to inference clients from a shared registry."""

    def __init__(self, registry: ModelRegistry, default_model: str):
        self.registry = registry
        self.default_model = default_model

    def resolve(self, requested_name: str) -> Optional[Any]:
        return resolve_model(requested_name, self.registry, self.default_model)

    def require(self, requested_name: str) -> Any:
        """
        Resolve or fail the request.

        Raises:
            ModelNotFoundError: If the registry is empty
        """
        client = self.resolve(requested_name)
        if client is None:
            raise ModelNotFoundError(f"No LLM client available for model: {requested_name}")
        return client
