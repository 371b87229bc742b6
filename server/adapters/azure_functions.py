"""Azure Functions adapter.

Functions are mounted as ``/api/<package>/<name>/<version>/<suffix...>``; the
adapter is called with the ``HttpRequest`` and the function ``Context`` and
returns an ``azure.functions.HttpResponse``.
"""

import os
import uuid
from typing import Any, Dict, Mapping, Optional

import azure.functions as func
import httpx

from core.environment import Environment
from core.events import AzureEvent, first_header, parse_azure_request
from core.interfaces import (
    RUNTIME_AZURE,
    FunctionInfo,
    InvocationInfo,
    MainFactory,
    PathInfo,
    RuntimeInfo,
    UniversalContext,
)
from core.normalizer import build_request, is_binary, media_type, read_body, read_text, split_headers
from core.resolver import AzureResolver
from core.validators import AdapterSettings
from server.universal_handler import UniversalAdapter, error_headers


def parse_function_path(path: str) -> Dict[str, str]:
    """Split ``/api/<package>/<name>/<version>/<suffix...>`` into its parts."""
    segments = path.split("/")
    # ['', 'api', package, name, version, *suffix]
    segments += [""] * (5 - len(segments))
    return {
        "package": segments[2],
        "name": segments[3],
        "version": segments[4],
        "suffix": "/" + "/".join(segments[5:]),
    }


class AzureFunctionsAdapter(UniversalAdapter):
    runtime_name = RUNTIME_AZURE

    def __init__(
        self,
        main_factory: MainFactory,
        settings: Optional[AdapterSettings] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(main_factory, settings)
        # deploy-time parameters; the process environment wins over them
        self.params = dict(params or {})

    def invocation_id(self, event: Any, context: Any = None) -> str:
        return getattr(context, "invocation_id", None) or str(uuid.uuid4())

    def parse_event(self, event: Any, context: Any) -> AzureEvent:
        return parse_azure_request(event)

    def build_context(self, parsed: AzureEvent, event: Any, context: Any) -> UniversalContext:
        url = httpx.URL(parsed.url)
        function = parse_function_path(url.path)
        return UniversalContext(
            resolver=AzureResolver(os.environ.get("WEBSITE_HOSTNAME") or url.host),
            path_info=PathInfo(suffix=function["suffix"]),
            runtime=RuntimeInfo(
                name=self.runtime_name,
                region=os.environ.get("REGION_NAME") or os.environ.get("Location"),
            ),
            func=FunctionInfo(
                name=function["name"],
                package=function["package"],
                version=function["version"],
                fqn=getattr(context, "function_name", None),
                app=os.environ.get("WEBSITE_SITE_NAME"),
            ),
            invocation=InvocationInfo(
                id=self.invocation_id(event, context),
                transaction_id=first_header(parsed.headers, "x-transaction-id"),
                request_id=first_header(parsed.headers, "x-request-id"),
            ),
            env=Environment.from_process(self.params),
        )

    def build_request(self, parsed: AzureEvent, ctx: UniversalContext) -> httpx.Request:
        return build_request(parsed.method, parsed.url, parsed.headers, parsed.body)

    async def to_envelope(self, response: Any, parsed: AzureEvent, ctx: UniversalContext) -> func.HttpResponse:
        headers, cookies = split_headers(response.headers)
        if cookies:
            headers["set-cookie"] = ", ".join(cookies)
        content_type = headers.get("content-type")
        if is_binary(content_type, headers.get("content-encoding")):
            body: Any = await read_body(response)
        else:
            body = await read_text(response)
        return func.HttpResponse(
            body=body,
            status_code=response.status_code,
            headers=headers,
            mimetype=media_type(content_type) or None,
        )

    def error_response(
        self, status: int, message: str, invocation_id: str, expose_error: bool = True
    ) -> func.HttpResponse:
        return func.HttpResponse(
            body=message,
            status_code=status,
            headers=error_headers(message, invocation_id, expose_error),
            mimetype="text/plain",
        )
