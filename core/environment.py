"""Invocation-scoped environment overlay.

Every invocation gets a fresh ``Environment`` seeded from the process
environment. Providers and plugins merge values into it, and a single
``commit()`` writes the merged set back into ``os.environ`` so that library
code reading ambient configuration observes the same values as the handler.
"""

import json
import logging
import os
from typing import Any, Dict, Iterator, Mapping, MutableMapping, Optional

from pydantic_core import core_schema

logger = logging.getLogger(__name__)

ENV_PREFIX = "UNIVERSAL_"


def _to_env_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


class Environment(MutableMapping[str, str]):
    """Mapping of configuration keys to string values."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None) -> None:
        self._values: Dict[str, str] = {}
        if values:
            self.merge(values)

    @classmethod
    def from_process(cls, defaults: Optional[Mapping[str, Any]] = None) -> "Environment":
        """Create an environment from ``defaults`` overlaid by ``os.environ``.

        Process values always win over the defaults.
        """
        env = cls(defaults)
        env.merge(os.environ)
        return env

    def merge(self, values: Mapping[str, Any], override: bool = True) -> "Environment":
        """Merge ``values`` into this environment.

        Args:
            values: Mapping to merge; non-string values are stringified
            override: If False, keys already present are kept

        Returns:
            This environment, for chaining
        """
        for key, value in values.items():
            if value is None:
                continue
            if not override and key in self._values:
                continue
            self._values[str(key)] = _to_env_value(value)
        return self

    def commit(self, target: Optional[MutableMapping[str, str]] = None) -> None:
        """Write all values into ``target`` (the process environment by default)."""
        target = os.environ if target is None else target
        for key, value in self._values.items():
            if target.get(key) != value:
                target[key] = value

    def to_dict(self) -> Dict[str, str]:
        return dict(self._values)

    @classmethod
    def __get_pydantic_core_schema__(cls, source: Any, handler: Any) -> core_schema.CoreSchema:
        # keep the instance as-is when used as a model field
        return core_schema.is_instance_schema(cls)

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._values[key] = _to_env_value(value)

    def __delitem__(self, key: str) -> None:
        del self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Environment({len(self._values)} keys)"


def apply_secrets(secrets: Mapping[str, Any]) -> int:
    """Set secrets on the process environment without overriding existing keys.

    Returns:
        Number of keys that were added
    """
    added = 0
    for key, value in secrets.items():
        if key not in os.environ and value is not None:
            os.environ[key] = _to_env_value(value)
            added += 1
    return added


def update_process_env(context: Any) -> None:
    """Commit ``context.env`` and the function identity into ``os.environ``.

    The identity is exposed as ``UNIVERSAL_RUNTIME``, ``UNIVERSAL_NAME``,
    ``UNIVERSAL_PACKAGE``, ``UNIVERSAL_APP`` and ``UNIVERSAL_VERSION``.
    """
    identity = {
        f"{ENV_PREFIX}RUNTIME": context.runtime.name,
        f"{ENV_PREFIX}NAME": context.func.name,
        f"{ENV_PREFIX}PACKAGE": context.func.package,
        f"{ENV_PREFIX}APP": context.func.app,
        f"{ENV_PREFIX}VERSION": context.func.version,
    }
    context.env.merge(identity)
    context.env.commit()
    logger.debug(
        "Committed invocation environment",
        extra={"env_keys": len(context.env), "runtime": context.runtime.name},
    )
