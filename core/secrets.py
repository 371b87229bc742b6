"""Secrets loading shared by the provider secrets plugins."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from core.environment import apply_secrets
from core.plugin_chain import Middleware

logger = logging.getLogger(__name__)

DEFAULT_EXPIRATION = 60 * 60


class SecretsLoader(ABC):
    """Loads a function's secrets from a secret store and caches them.

    The cache lives for the lifetime of the process and holds one entry per
    secret name.
    """

    def __init__(self, name_template: str) -> None:
        self.name_template = name_template
        self._cache: Dict[str, Dict[str, Any]] = {}

    def secret_name(self, package: Optional[str], name: Optional[str] = None) -> str:
        """Expand the name template for the given function."""
        return self.name_template.format(package=package or "default", name=name or "")

    @abstractmethod
    def function_identity(self, event: Any, context: Any) -> Dict[str, Optional[str]]:
        """Return ``{"package": ..., "name": ...}`` from the raw invocation."""
        pass

    @abstractmethod
    async def load(self, secret_name: str) -> Dict[str, str]:
        """Fetch the secret from the store.

        Returns:
            The decoded secret, or an empty dict if it does not exist

        Raises:
            SecretsError: If the store cannot be reached or throttles
        """
        pass

    async def get(self, secret_name: str, expiration: int = DEFAULT_EXPIRATION) -> Dict[str, str]:
        """Return the cached secret, loading it again once it is older than ``expiration`` seconds."""
        now = time.time()
        cached = self._cache.get(secret_name)
        if cached and now - cached["date"] < expiration:
            return cached["data"]

        data = await self.load(secret_name)
        self._cache[secret_name] = {"date": now, "data": data}
        logger.info(
            f"Loaded secrets from {secret_name}",
            extra={"secret_name": secret_name, "secret_keys": len(data)},
        )
        return data

    def clear(self) -> None:
        self._cache.clear()


class SecretsMiddleware(Middleware):
    """Applies the function's secrets to the process environment before each invocation.

    Keys already present in the environment are never overridden.
    """

    def __init__(self, loader: SecretsLoader, expiration: int = DEFAULT_EXPIRATION) -> None:
        self.loader = loader
        self.expiration = expiration

    async def before(self, event: Any, context: Any) -> None:
        identity = self.loader.function_identity(event, context)
        secret_name = self.loader.secret_name(identity.get("package"), identity.get("name"))
        secrets = await self.loader.get(secret_name, self.expiration)
        added = apply_secrets(secrets)
        logger.debug(f"Applied {added} secret(s) to environment", extra={"secret_name": secret_name})
