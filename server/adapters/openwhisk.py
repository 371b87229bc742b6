"""Apache OpenWhisk adapter.

Actions are invoked with a single parameter dictionary. Web actions receive
the HTTP request in the ``__ow_*`` parameters; all other parameters are
either configuration (upper-case names) or query parameters.
"""

import base64
import json
import os
import re
import uuid
from typing import Any, Dict, List, Tuple
from urllib.parse import parse_qsl, urlencode

import httpx

from core.environment import Environment
from core.events import OpenWhiskEvent, first_header, parse_openwhisk_params
from core.interfaces import (
    RUNTIME_OPENWHISK,
    FunctionInfo,
    InvocationInfo,
    PathInfo,
    RuntimeInfo,
    UniversalContext,
)
from core.normalizer import build_request, is_binary, read_body, read_text, split_headers
from core.resolver import OpenWhiskResolver
from server.universal_handler import UniversalAdapter, error_headers

ENV_PARAM = re.compile(r"^[A-Z0-9_]+$")


def parse_action_name(action_name: str) -> Dict[str, str]:
    """Split ``/<namespace>/<package>/<name>@<version>`` into its parts."""
    segments = action_name.split("/")
    name, _, version = segments.pop().partition("@")
    package = segments.pop() if len(segments) > 1 else ""
    namespace = "/".join(s for s in segments if s)
    return {"namespace": namespace, "package": package, "name": name, "version": version}


def _param_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def split_params(params: Dict[str, Any]) -> Tuple[Dict[str, Any], List[Tuple[str, str]]]:
    """Split action parameters into environment values and query parameters."""
    env: Dict[str, Any] = {}
    query: List[Tuple[str, str]] = []
    for key, value in params.items():
        if ENV_PARAM.match(key):
            env[key] = value
        else:
            query.append((key, _param_value(value)))
    return env, query


class OpenWhiskAdapter(UniversalAdapter):
    runtime_name = RUNTIME_OPENWHISK

    def invocation_id(self, event: Any, context: Any = None) -> str:
        return os.environ.get("__OW_ACTIVATION_ID") or str(uuid.uuid4())

    def parse_event(self, event: Any, context: Any) -> OpenWhiskEvent:
        return parse_openwhisk_params(event or {})

    def api_host(self, parsed: OpenWhiskEvent) -> str:
        forwarded = first_header(parsed.headers, "x-forwarded-host")
        if isinstance(forwarded, str) and forwarded:
            return f"https://{forwarded.split(',')[0].strip()}"
        return os.environ.get("__OW_API_HOST") or self.settings.openwhisk.default_api_host

    def build_context(self, parsed: OpenWhiskEvent, event: Any, context: Any) -> UniversalContext:
        action_name = os.environ.get("__OW_ACTION_NAME", "")
        action = parse_action_name(action_name)

        env = Environment.from_process()
        env.pop("__OW_API_KEY", None)
        param_env, _ = split_params(parsed.params)
        env.merge(param_env)

        deadline = os.environ.get("__OW_DEADLINE")
        return UniversalContext(
            resolver=OpenWhiskResolver(self.api_host(parsed), action["namespace"]),
            path_info=PathInfo(suffix=parsed.suffix),
            runtime=RuntimeInfo(name=self.runtime_name, region=os.environ.get("__OW_REGION")),
            func=FunctionInfo(
                name=action["name"],
                package=action["package"],
                version=action["version"],
                fqn=action_name,
                app=os.environ.get("__OW_NAMESPACE"),
            ),
            invocation=InvocationInfo(
                id=self.invocation_id(event, context),
                deadline=int(deadline) if deadline and deadline.isdigit() else None,
                transaction_id=first_header(parsed.headers, "x-transaction-id")
                or os.environ.get("__OW_TRANSACTION_ID"),
                request_id=first_header(parsed.headers, "x-request-id"),
            ),
            env=env,
        )

    def build_request(self, parsed: OpenWhiskEvent, ctx: UniversalContext) -> httpx.Request:
        _, extra_query = split_params(parsed.params)
        query = parse_qsl(parsed.query, keep_blank_values=True) + extra_query
        url = f"{self.api_host(parsed)}/api/v1/web{ctx.func.fqn}{parsed.suffix}"
        if query:
            url = f"{url}?{urlencode(query)}"
        return build_request(parsed.method, url, parsed.headers, parsed.body)

    async def to_envelope(self, response: Any, parsed: OpenWhiskEvent, ctx: UniversalContext) -> Dict[str, Any]:
        headers, cookies = split_headers(response.headers)
        if cookies:
            headers["set-cookie"] = ", ".join(cookies)
        if parsed.web:
            headers["x-last-activation-id"] = ctx.invocation.id
        if is_binary(headers.get("content-type"), headers.get("content-encoding")):
            body = base64.b64encode(await read_body(response)).decode("ascii")
        else:
            body = await read_text(response)
        return {
            "statusCode": response.status_code,
            "headers": headers,
            "body": body,
        }

    def error_response(
        self, status: int, message: str, invocation_id: str, expose_error: bool = True
    ) -> Dict[str, Any]:
        return {
            "statusCode": status,
            "headers": error_headers(message, invocation_id, expose_error),
            "body": message,
        }
