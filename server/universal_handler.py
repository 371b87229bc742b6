"""Provider-independent invocation flow shared by all adapters.

Every adapter runs the same sequence for an invocation: normalize the
provider event into a canonical request, build the invocation context,
commit the environment, call main, normalize the response into the provider
envelope and flush the function's log. Provider subclasses only supply the
parsing and envelope steps.
"""

import importlib
import inspect
import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from core.environment import update_process_env
from core.errors import (
    BadRequestError,
    InvalidResponseError,
    PayloadTooLargeError,
    status_code_of,
)
from core.events import ProviderEvent
from core.interfaces import MainFactory, MainFunction, UniversalContext
from core.logging_utils import InvocationLogger, format_request_log, format_response_log
from core.normalizer import (
    cleanup_header_value,
    ensure_invocation_id,
    ensure_utf8_charset,
    read_trigger_result,
)
from core.validators import AdapterSettings, get_settings

logger = logging.getLogger(__name__)

MAIN_LOGGER = "universal.main"


def import_main(spec: str) -> MainFactory:
    """Return a factory importing main from ``"module:attribute"``.

    The import happens when the factory is called, so the module is loaded
    after the environment of the first invocation has been committed.
    """
    module_name, _, attr = spec.partition(":")
    attr = attr or "main"
    if not module_name:
        raise ValueError(f"Invalid main reference '{spec}', expected 'module:attribute'")

    def factory() -> MainFunction:
        module = importlib.import_module(module_name)
        try:
            return getattr(module, attr)
        except AttributeError:
            raise ImportError(f"Module '{module_name}' has no attribute '{attr}'")

    return factory


def error_headers(message: str, invocation_id: str, expose_error: bool = True) -> Dict[str, str]:
    headers = {
        "content-type": "text/plain",
        "x-invocation-id": invocation_id,
    }
    if expose_error and message:
        headers["x-error"] = cleanup_header_value(message)
    return headers


class UniversalAdapter(ABC):
    """Base class of the raw provider adapters.

    Subclasses implement event parsing, request and context construction and
    the provider envelope. Instances are async callables taking the provider's
    ``(event, context)`` pair.
    """

    runtime_name: str = ""

    def __init__(self, main_factory: MainFactory, settings: Optional[AdapterSettings] = None) -> None:
        self.main_factory = main_factory
        self._settings = settings
        self._main: Optional[MainFunction] = None

    @property
    def settings(self) -> AdapterSettings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    def main(self) -> MainFunction:
        """Main function, created on the first invocation of this process."""
        if self._main is None:
            self._main = self.main_factory()
            logger.info(f"Loaded main function for {self.runtime_name}")
        return self._main

    @abstractmethod
    def parse_event(self, event: Any, context: Any) -> ProviderEvent:
        pass

    @abstractmethod
    def build_context(self, parsed: ProviderEvent, event: Any, context: Any) -> UniversalContext:
        pass

    @abstractmethod
    def build_request(self, parsed: ProviderEvent, ctx: UniversalContext) -> httpx.Request:
        """Build the canonical request.

        Raises:
            BadRequestError: If the event cannot form a valid HTTP request
        """
        pass

    @abstractmethod
    async def to_envelope(self, response: Any, parsed: ProviderEvent, ctx: UniversalContext) -> Any:
        pass

    @abstractmethod
    def error_response(
        self, status: int, message: str, invocation_id: str, expose_error: bool = True
    ) -> Any:
        pass

    def is_trigger(self, event: Any) -> bool:
        return False

    def invocation_id(self, event: Any, context: Any = None) -> str:
        return str(uuid.uuid4())

    async def __call__(self, event: Any, context: Any = None) -> Any:
        start_time = time.perf_counter()
        trigger = self.is_trigger(event)
        try:
            parsed = self.parse_event(event, context)
            ctx = self.build_context(parsed, event, context)
        except Exception as e:
            if trigger:
                raise
            invocation_id = self.invocation_id(event, context)
            bad_request = isinstance(e, BadRequestError)
            logger.error(
                f"Unable to read {self.runtime_name} invocation: {e}",
                extra={"invocation_id": invocation_id, "runtime": self.runtime_name},
                exc_info=not bad_request,
            )
            return self.error_response(
                status_code_of(e), str(e), invocation_id, expose_error=not bad_request
            )
        invocation_id = ctx.invocation.id

        try:
            request = self.build_request(parsed, ctx)
        except BadRequestError as e:
            logger.warning(
                f"Rejected invalid request: {e}",
                extra={"invocation_id": invocation_id, "runtime": self.runtime_name},
            )
            return self.error_response(e.status_code, str(e), invocation_id, expose_error=False)

        if ctx.log is None:
            ctx.log = InvocationLogger(logging.getLogger(MAIN_LOGGER), {"invocation_id": invocation_id})

        logger.info(
            "Invocation started",
            extra=format_request_log(
                invocation_id=invocation_id,
                runtime=self.runtime_name,
                method=request.method,
                url=str(request.url),
                headers=request.headers,
                body_size=len(request.content),
                function=ctx.func.fqn,
            ),
        )

        update_process_env(ctx)

        try:
            response = self.main()(request, ctx)
            if inspect.isawaitable(response):
                response = await response
            ensure_utf8_charset(response)
            ensure_invocation_id(response, ctx)
            if trigger:
                result = await read_trigger_result(response)
            else:
                result = await self.to_envelope(response, parsed, ctx)
        except PayloadTooLargeError as e:
            logger.error(
                f"Response too large: {e}",
                extra={"invocation_id": invocation_id, "runtime": self.runtime_name},
            )
            result = self.error_response(e.status_code, "", invocation_id, expose_error=False)
            response = None
        except Exception as e:
            status = status_code_of(e)
            logger.error(
                f"Error while invoking function: {e}",
                extra={
                    "invocation_id": invocation_id,
                    "runtime": self.runtime_name,
                    "error_type": type(e).__name__,
                },
                exc_info=not isinstance(e, InvalidResponseError),
            )
            if trigger:
                raise
            result = self.error_response(status, str(e), invocation_id)
            response = None

        await self.flush_log(ctx)

        if response is not None:
            logger.info(
                "Invocation completed",
                extra=format_response_log(
                    invocation_id=invocation_id,
                    status_code=getattr(response, "status_code", 200),
                    headers=response.headers,
                    duration_ms=(time.perf_counter() - start_time) * 1000,
                ),
            )
        return result

    async def flush_log(self, ctx: UniversalContext) -> None:
        """Flush ``context.log`` if it supports flushing.

        A failing flush is logged and never replaces the response.
        """
        flush = getattr(ctx.log, "flush", None)
        if not callable(flush):
            return
        try:
            result = flush()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                f"Failed to flush function log: {e}",
                extra={"invocation_id": ctx.invocation.id},
                exc_info=True,
            )
