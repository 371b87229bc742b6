"""Direct invocation adapter.

Runs main without an HTTP gateway, e.g. from a queue consumer, a scheduler
or a script. Every invocation is a trigger: the decoded response body is
returned and errors propagate to the caller.
"""

import os
import time
import uuid
from typing import Any, Mapping, Optional

import httpx

from core.environment import ENV_PREFIX, Environment
from core.events import DirectEvent, parse_direct_event
from core.interfaces import (
    RUNTIME_DIRECT,
    FunctionInfo,
    InvocationInfo,
    MainFactory,
    RuntimeInfo,
    UniversalContext,
)
from core.normalizer import build_request, read_trigger_result
from core.resolver import DirectResolver
from core.validators import AdapterSettings
from server.universal_handler import UniversalAdapter, error_headers


class DirectAdapter(UniversalAdapter):
    """Adapter for in-process invocations.

    The function identity is taken from the constructor, falling back to the
    ``UNIVERSAL_*`` environment variables. The optional invocation context
    mapping may carry ``invocation_id`` and ``timeout_ms``.
    """

    runtime_name = RUNTIME_DIRECT

    def __init__(
        self,
        main_factory: MainFactory,
        settings: Optional[AdapterSettings] = None,
        name: Optional[str] = None,
        package: Optional[str] = None,
        version: Optional[str] = None,
        app: Optional[str] = None,
    ) -> None:
        super().__init__(main_factory, settings)
        self.name = name
        self.package = package
        self.version = version
        self.app = app

    def _identity(self, key: str, value: Optional[str]) -> Optional[str]:
        return value if value is not None else os.environ.get(f"{ENV_PREFIX}{key}")

    def is_trigger(self, event: Any) -> bool:
        return True

    def invocation_id(self, event: Any, context: Any = None) -> str:
        if isinstance(context, Mapping) and context.get("invocation_id"):
            return str(context["invocation_id"])
        return str(uuid.uuid4())

    def parse_event(self, event: Any, context: Any) -> DirectEvent:
        return parse_direct_event(event)

    def build_context(self, parsed: DirectEvent, event: Any, context: Any) -> UniversalContext:
        deadline = None
        if isinstance(context, Mapping) and context.get("timeout_ms") is not None:
            deadline = int(time.time() * 1000) + int(context["timeout_ms"])

        name = self._identity("NAME", self.name)
        package = self._identity("PACKAGE", self.package)
        version = self._identity("VERSION", self.version)
        return UniversalContext(
            resolver=DirectResolver(),
            runtime=RuntimeInfo(name=self.runtime_name),
            func=FunctionInfo(
                name=name,
                package=package,
                version=version,
                fqn="/".join(p for p in (package, name) if p) or None,
                app=self._identity("APP", self.app),
            ),
            invocation=InvocationInfo(
                id=self.invocation_id(event, context),
                deadline=deadline,
                event=parsed.raw,
            ),
            env=Environment.from_process(),
            records=parsed.records,
        )

    def build_request(self, parsed: DirectEvent, ctx: UniversalContext) -> httpx.Request:
        query = f"?{parsed.query_string}" if parsed.query_string else ""
        return build_request("GET", f"https://localhost/{query}")

    async def to_envelope(self, response: Any, parsed: DirectEvent, ctx: UniversalContext) -> Any:
        return await read_trigger_result(response)

    def error_response(
        self, status: int, message: str, invocation_id: str, expose_error: bool = True
    ) -> Any:
        return {
            "statusCode": status,
            "headers": error_headers(message, invocation_id, expose_error),
            "body": message,
        }
