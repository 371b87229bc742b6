"""Google Cloud Functions adapter.

The function is deployed as ``<package>--<name>`` (``K_SERVICE``) and called
with the Flask request; the returned tuple is sent by the Functions Framework.
"""

import os
import time
import uuid
from typing import Any, List, Optional, Tuple, Union

import httpx

from core.environment import Environment
from core.events import GoogleEvent, first_header, parse_google_request
from core.interfaces import RUNTIME_GOOGLE, FunctionInfo, InvocationInfo, PathInfo, RuntimeInfo, UniversalContext
from core.normalizer import build_request, is_binary, read_body, read_text, split_headers
from core.resolver import GoogleResolver
from server.universal_handler import UniversalAdapter, error_headers

FlaskResponse = Tuple[Union[bytes, str], int, List[Tuple[str, str]]]


def parse_host(host: str) -> Tuple[Optional[str], Optional[str]]:
    """Split ``us-central1-helix-225321.cloudfunctions.net`` into region and app."""
    subdomain = host.split(".")[0]
    parts = subdomain.split("-")
    if len(parts) < 3:
        return None, None
    return f"{parts[0]}-{parts[1]}", "-".join(parts[2:])


class GoogleCloudAdapter(UniversalAdapter):
    runtime_name = RUNTIME_GOOGLE

    def invocation_id(self, event: Any, context: Any = None) -> str:
        headers = getattr(event, "headers", None)
        execution_id = headers.get("function-execution-id") if headers is not None else None
        return execution_id or str(uuid.uuid4())

    def parse_event(self, event: Any, context: Any) -> GoogleEvent:
        return parse_google_request(event)

    def build_context(self, parsed: GoogleEvent, event: Any, context: Any) -> UniversalContext:
        service = os.environ.get("K_SERVICE", "")
        package, sep, name = service.partition("--")
        if not sep:
            package, name = "", service
        region, app = parse_host(parsed.host)

        timeout = first_header(parsed.headers, "x-appengine-timeout-ms")
        deadline = int(time.time() * 1000) + int(timeout) if timeout and timeout.isdigit() else None

        return UniversalContext(
            resolver=GoogleResolver(region, app),
            path_info=PathInfo(suffix=parsed.path),
            runtime=RuntimeInfo(name=self.runtime_name, region=region),
            func=FunctionInfo(
                name=name,
                package=package,
                version=os.environ.get("K_REVISION"),
                fqn=service,
                app=app,
            ),
            invocation=InvocationInfo(
                id=first_header(parsed.headers, "function-execution-id") or str(uuid.uuid4()),
                deadline=deadline,
                transaction_id=first_header(parsed.headers, "x-transaction-id"),
                request_id=first_header(parsed.headers, "x-cloud-trace-context"),
            ),
            env=Environment.from_process(),
        )

    def build_request(self, parsed: GoogleEvent, ctx: UniversalContext) -> httpx.Request:
        query = f"?{parsed.query_string}" if parsed.query_string else ""
        url = f"https://{parsed.host}/{ctx.func.fqn}{parsed.path}{query}"
        return build_request(parsed.method, url, parsed.headers, parsed.body)

    async def to_envelope(self, response: Any, parsed: GoogleEvent, ctx: UniversalContext) -> FlaskResponse:
        headers, cookies = split_headers(response.headers)
        header_list = list(headers.items()) + [("set-cookie", cookie) for cookie in cookies]
        if is_binary(headers.get("content-type"), headers.get("content-encoding")):
            body: Union[bytes, str] = await read_body(response)
        else:
            body = await read_text(response)
        return body, response.status_code, header_list

    def error_response(
        self, status: int, message: str, invocation_id: str, expose_error: bool = True
    ) -> FlaskResponse:
        return message, status, list(error_headers(message, invocation_id, expose_error).items())
