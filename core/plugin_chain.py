"""Plugin composition for provider adapters.

A plugin is a callable ``plugin(fn, **options)`` returning a new async
function with the same ``(event, context)`` signature. Handlers keep their
plugins as an ordered tuple and compose them with a fixed reducer, so the
chain can be inspected and extended without mutating the original handler.
"""

import asyncio
import logging
from functools import reduce
from typing import Any, Callable, Dict, Optional, Tuple

from core.errors import BadRequestError, status_code_of
from core.interfaces import Adapter, AdapterFunction

logger = logging.getLogger(__name__)

Plugin = Callable[..., AdapterFunction]
PluginEntry = Tuple[Plugin, Dict[str, Any]]


class Middleware:
    """Plugin built from ``before``/``after``/``on_error`` hooks.

    Subclasses override the hooks they need. ``on_error`` may return a
    replacement result; returning None re-raises the original error.
    """

    async def before(self, event: Any, context: Any) -> None:
        pass

    async def after(self, event: Any, context: Any, result: Any) -> Any:
        return result

    async def on_error(self, event: Any, context: Any, error: Exception) -> Optional[Any]:
        return None

    def __call__(self, fn: AdapterFunction, **options: Any) -> AdapterFunction:
        async def wrapped(event: Any, context: Any = None) -> Any:
            await self.before(event, context)
            try:
                result = await fn(event, context)
            except Exception as e:
                replacement = await self.on_error(event, context, e)
                if replacement is None:
                    raise
                return replacement
            return await self.after(event, context, result)

        return wrapped


class UniversalHandler:
    """Callable provider handler with an ordered plugin chain.

    Plugins added later wrap the ones added earlier, so the last plugin is
    the outermost and runs first.
    """

    def __init__(self, adapter: Adapter, plugins: Tuple[PluginEntry, ...] = ()) -> None:
        self.raw = adapter
        self.plugins: Tuple[PluginEntry, ...] = tuple(plugins)
        self._composed: Optional[AdapterFunction] = None

    def with_plugin(self, plugin: Plugin, **options: Any) -> "UniversalHandler":
        """Return a new handler with ``plugin`` as the outermost layer."""
        return UniversalHandler(self.raw, self.plugins + ((plugin, options),))

    @staticmethod
    def wrap(fn: AdapterFunction, plugin: Plugin, options: Dict[str, Any]) -> AdapterFunction:
        return plugin(fn, **options)

    def compose(self) -> AdapterFunction:
        if self._composed is None:
            self._composed = reduce(
                lambda fn, entry: self.wrap(fn, entry[0], entry[1]),
                self.plugins,
                self.raw,
            )
        return self._composed

    async def invoke(self, event: Any, context: Any = None) -> Any:
        """Run the composed chain.

        Errors escaping the chain become the provider's error response, except
        for trigger invocations which re-raise so the provider can retry.
        """
        try:
            return await self.compose()(event, context)
        except Exception as e:
            if self.raw.is_trigger(event):
                raise
            status = status_code_of(e)
            logger.error(
                f"Unhandled error in {self.raw.runtime_name} handler: {e}",
                extra={"status_code": status, "error_type": type(e).__name__},
                exc_info=status >= 500,
            )
            return self.raw.error_response(
                status,
                str(e),
                self.raw.invocation_id(event, context),
                expose_error=not isinstance(e, BadRequestError),
            )

    def __call__(self, event: Any, context: Any = None) -> Any:
        return asyncio.run(self.invoke(event, context))

    def __repr__(self) -> str:
        names = [getattr(p, "__name__", type(p).__name__) for p, _ in self.plugins]
        return f"UniversalHandler({self.raw.runtime_name}, plugins={names})"


def wrap(adapter: Adapter) -> UniversalHandler:
    """Wrap a raw adapter into a handler without plugins."""
    return UniversalHandler(adapter)
