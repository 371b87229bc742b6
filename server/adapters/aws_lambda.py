"""AWS Lambda adapter.

Handles API Gateway (payload v1 and v2) and Function URL events as HTTP
requests, and every other event (SQS, EventBridge, schedules, direct invokes)
as a trigger invocation whose result is returned as-is.
"""

import base64
import json
import os
import time
import uuid
from typing import Any, Dict, List, Optional, Protocol, Union

import httpx

from core.environment import Environment
from core.errors import PayloadTooLargeError
from core.events import AwsHttpEvent, AwsTriggerEvent, first_header, parse_aws_event
from core.interfaces import (
    RUNTIME_AWS,
    FunctionInfo,
    InvocationInfo,
    PathInfo,
    RuntimeInfo,
    UniversalContext,
)
from core.normalizer import build_request, is_binary, read_body, read_text, reconcile_cookie_header, split_headers
from core.resolver import AwsResolver
from plugins.aws.storage import S3Storage
from server.universal_handler import UniversalAdapter, error_headers

# Lambda's synchronous response payload ceiling
MAX_RESPONSE_SIZE = 6_000_000


class LambdaContext(Protocol):
    """The Lambda context object attributes used by the adapter."""

    aws_request_id: str
    invoked_function_arn: str

    def get_remaining_time_in_millis(self) -> int:
        ...


def parse_function_arn(arn: str) -> Dict[str, Optional[str]]:
    """Parse a Lambda function ARN.

    ``arn:aws:lambda:us-east-1:118435662149:function:helix-pages--dump:4_3_1``
    yields package ``helix-pages``, name ``dump`` and version ``4.3.1``. A
    missing alias means ``$LATEST``.
    """
    parts = arn.split(":")
    if len(parts) < 7:
        raise ValueError(f"Invalid function ARN: {arn}")
    region, account_id, function_name = parts[3], parts[4], parts[6]
    alias = parts[7] if len(parts) > 7 and parts[7] else "$LATEST"

    package, sep, name = function_name.partition("--")
    if not sep:
        package, name = "", function_name

    return {
        "region": region,
        "account_id": account_id,
        "package": package,
        "name": name,
        "version": alias.replace("_", "."),
    }


def response_size(
    headers: Dict[str, Any], body: str, is_base64: bool, cookies: Optional[List[str]] = None
) -> int:
    """Approximate serialized size of a Lambda response.

    Text bodies are measured JSON-escaped since that is how Lambda ships them.
    Cookies count whether they travel as ``cookies`` or ``multiValueHeaders``.
    """
    body_size = len(body) if is_base64 else len(json.dumps(body))
    cookies_size = len(json.dumps(cookies)) if cookies else 0
    return len(json.dumps(headers)) + body_size + cookies_size


class AwsLambdaAdapter(UniversalAdapter):
    runtime_name = RUNTIME_AWS

    def is_trigger(self, event: Any) -> bool:
        return not (isinstance(event, dict) and event.get("requestContext"))

    def invocation_id(self, event: Any, context: Any = None) -> str:
        return getattr(context, "aws_request_id", None) or str(uuid.uuid4())

    def parse_event(self, event: Any, context: Any) -> Union[AwsHttpEvent, AwsTriggerEvent]:
        return parse_aws_event(event or {})

    def build_context(self, parsed: Any, event: Any, context: Any) -> UniversalContext:
        arn = getattr(context, "invoked_function_arn", None)
        if arn:
            identity = parse_function_arn(arn)
        else:
            identity = parse_function_arn(
                "arn:aws:lambda:{}:{}:function:{}".format(
                    os.environ.get("AWS_REGION", ""),
                    "",
                    os.environ.get("AWS_LAMBDA_FUNCTION_NAME", ""),
                )
            )

        deadline = None
        remaining = getattr(context, "get_remaining_time_in_millis", None)
        if callable(remaining):
            deadline = int(time.time() * 1000) + remaining()

        if isinstance(parsed, AwsHttpEvent):
            transaction_id = first_header(parsed.headers, "x-transaction-id") or first_header(
                parsed.headers, "x-amzn-trace-id"
            )
            app = parsed.api_id or f"aws-{identity['account_id']}"
            resolver = AwsResolver(parsed.host)
            request_id = parsed.request_id
            invocation_event: Any = parsed.raw
            records = None
            suffix = parsed.suffix
        else:
            transaction_id = None
            app = f"aws-{identity['account_id']}"
            resolver = AwsResolver("localhost")
            request_id = None
            invocation_event = parsed.bus_event or parsed.raw
            records = parsed.records
            suffix = ""

        return UniversalContext(
            resolver=resolver,
            path_info=PathInfo(suffix=suffix),
            runtime=RuntimeInfo(
                name=self.runtime_name,
                region=identity["region"] or os.environ.get("AWS_REGION"),
                account_id=identity["account_id"] or None,
            ),
            func=FunctionInfo(
                name=identity["name"],
                package=identity["package"],
                version=identity["version"],
                fqn=arn,
                app=app,
            ),
            invocation=InvocationInfo(
                id=self.invocation_id(event, context),
                deadline=deadline,
                transaction_id=transaction_id,
                request_id=request_id,
                event=invocation_event,
            ),
            env=Environment.from_process(),
            records=records,
            storage=S3Storage(region=identity["region"] or None),
        )

    def build_request(self, parsed: Any, ctx: UniversalContext) -> httpx.Request:
        if isinstance(parsed, AwsTriggerEvent):
            query = f"?{parsed.query_string}" if parsed.query_string else ""
            return build_request("GET", f"https://localhost/{query}")

        query = f"?{parsed.query_string}" if parsed.query_string else ""
        headers = reconcile_cookie_header(dict(parsed.headers), parsed.cookies)
        return build_request(
            parsed.method,
            f"https://{parsed.host}{parsed.path}{query}",
            headers,
            parsed.body,
        )

    async def to_envelope(self, response: Any, parsed: Any, ctx: UniversalContext) -> Dict[str, Any]:
        headers, cookies = split_headers(response.headers)
        is_base64 = is_binary(headers.get("content-type"), headers.get("content-encoding"))
        if is_base64:
            body = base64.b64encode(await read_body(response)).decode("ascii")
        else:
            body = await read_text(response)

        size = response_size(headers, body, is_base64, cookies)
        if size >= MAX_RESPONSE_SIZE:
            raise PayloadTooLargeError(f"response size {size} exceeds {MAX_RESPONSE_SIZE} bytes")

        envelope: Dict[str, Any] = {
            "statusCode": response.status_code,
            "headers": headers,
            "isBase64Encoded": is_base64,
            "body": body,
        }
        if cookies:
            if parsed.payload_version == "1.0":
                envelope["multiValueHeaders"] = {"set-cookie": cookies}
            else:
                envelope["cookies"] = cookies
        return envelope

    def error_response(
        self, status: int, message: str, invocation_id: str, expose_error: bool = True
    ) -> Dict[str, Any]:
        return {
            "statusCode": status,
            "headers": error_headers(message, invocation_id, expose_error),
            "isBase64Encoded": False,
            "body": message,
        }
