"""Provider invocation shapes as tagged event variants.

Each provider hands the function a differently shaped object. The parse
functions in this module turn those objects into one of a closed set of
frozen variants, so adapters can dispatch on the variant instead of probing
optional fields.
"""

import base64
import binascii
import json
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Tuple, Union
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field

from core.errors import BadRequestError
from core.normalizer import event_to_query_string, is_binary_type, lower_case_headers

HeaderValues = Union[str, List[str]]

# OpenWhisk reserved web action parameters
OW_METHOD = "__ow_method"
OW_HEADERS = "__ow_headers"
OW_PATH = "__ow_path"
OW_BODY = "__ow_body"
OW_QUERY = "__ow_query"
OW_RESERVED = (OW_METHOD, OW_HEADERS, OW_PATH, OW_BODY, OW_QUERY)


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class AwsHttpEvent(_Event):
    """API Gateway (payload v1 or v2) or Function URL request."""

    kind: Literal["aws-http"] = "aws-http"
    payload_version: str = "2.0"
    method: str = "GET"
    host: str = "localhost"
    path: str = ""
    query_string: str = ""
    headers: Dict[str, HeaderValues] = Field(default_factory=dict)
    cookies: List[str] = Field(default_factory=list)
    body: Optional[bytes] = None
    suffix: str = ""
    api_id: Optional[str] = None
    request_id: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class AwsTriggerEvent(_Event):
    """Non-HTTP AWS invocation (SQS, EventBridge, direct invoke, schedules)."""

    kind: Literal["aws-trigger"] = "aws-trigger"
    query_string: str = ""
    records: Optional[List[Any]] = None
    bus_event: Optional[Dict[str, Any]] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class AzureEvent(_Event):
    kind: Literal["azure"] = "azure"
    method: str = "GET"
    url: str
    headers: Dict[str, HeaderValues] = Field(default_factory=dict)
    body: Optional[bytes] = None


class GoogleEvent(_Event):
    kind: Literal["google"] = "google"
    method: str = "GET"
    host: str = ""
    path: str = ""
    query_string: str = ""
    headers: Dict[str, HeaderValues] = Field(default_factory=dict)
    body: Optional[bytes] = None


class OpenWhiskEvent(_Event):
    kind: Literal["openwhisk"] = "openwhisk"
    method: str = "GET"
    headers: Dict[str, HeaderValues] = Field(default_factory=dict)
    suffix: str = ""
    body: Optional[Union[bytes, str]] = None
    query: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)
    web: bool = False


class DirectEvent(_Event):
    """Event handed to the function without any HTTP gateway."""

    kind: Literal["direct"] = "direct"
    query_string: str = ""
    records: Optional[List[Any]] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


ProviderEvent = Union[AwsHttpEvent, AwsTriggerEvent, AzureEvent, GoogleEvent, OpenWhiskEvent, DirectEvent]


def collect_headers(pairs: Iterable[Tuple[str, Any]]) -> Dict[str, HeaderValues]:
    """Group header pairs by lower-cased name, keeping repeated values as lists."""
    headers: Dict[str, HeaderValues] = {}
    for name, value in pairs:
        key = str(name).lower()
        if key in headers:
            existing = headers[key]
            headers[key] = (existing if isinstance(existing, list) else [existing]) + [value]
        else:
            headers[key] = value
    return headers


def first_header(headers: Mapping[str, HeaderValues], name: str) -> Optional[str]:
    value = headers.get(name)
    if isinstance(value, list):
        return value[0] if value else None
    return value


def decode_base64_body(data: Any) -> bytes:
    """Decode a base64 transported request body.

    Raises:
        BadRequestError: If the body is not valid base64
    """
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, TypeError) as e:
        raise BadRequestError(f"request body is not valid base64: {e}") from e


def _decode_aws_body(event: Mapping[str, Any]) -> Optional[bytes]:
    body = event.get("body")
    if body is None:
        return None
    if event.get("isBase64Encoded"):
        return decode_base64_body(body)
    if isinstance(body, (dict, list)):
        # direct invokes occasionally pass structured bodies
        return json.dumps(body).encode("utf-8")
    return str(body).encode("utf-8")


def parse_aws_event(event: Mapping[str, Any]) -> Union[AwsHttpEvent, AwsTriggerEvent]:
    """Classify a Lambda event as HTTP (gateway, function URL) or trigger."""
    request_context = event.get("requestContext")
    if not request_context:
        bus_event = None
        if "detail-type" in event and "source" in event:
            bus_event = {
                "type": event.get("detail-type"),
                "source": event.get("source"),
                "time": event.get("time"),
                "resources": event.get("resources", []),
                "detail": event.get("detail"),
            }
        return AwsTriggerEvent(
            query_string=event_to_query_string(event),
            records=event.get("Records"),
            bus_event=bus_event,
            raw=dict(event),
        )

    is_v2 = event.get("version") == "2.0" or "rawPath" in event
    if is_v2:
        method = (request_context.get("http") or {}).get("method", "GET")
        path = event.get("rawPath") or ""
        query_string = event.get("rawQueryString") or ""
        headers = lower_case_headers(event.get("headers"))
    else:
        method = event.get("httpMethod", "GET")
        path = event.get("path") or ""
        multi_query = event.get("multiValueQueryStringParameters")
        if multi_query:
            query_string = urlencode(multi_query, doseq=True)
        else:
            query_string = urlencode(event.get("queryStringParameters") or {})
        headers = lower_case_headers(event.get("multiValueHeaders") or event.get("headers"))

    path_parameters = event.get("pathParameters") or {}
    suffix = f"/{path_parameters['path']}" if path_parameters.get("path") else ""

    return AwsHttpEvent(
        payload_version="2.0" if is_v2 else "1.0",
        method=method,
        host=request_context.get("domainName") or first_header(headers, "host") or "localhost",
        path=path,
        query_string=query_string,
        headers=headers,
        cookies=event.get("cookies") or [],
        body=_decode_aws_body(event),
        suffix=suffix,
        api_id=request_context.get("apiId"),
        request_id=request_context.get("requestId"),
        raw=dict(event),
    )


def parse_azure_request(req: Any) -> AzureEvent:
    """Parse an Azure ``HttpRequest``.

    Azure reports every binary upload as ``application/octet-stream``; clients
    send the real type in ``x-backup-content-type``.
    """
    headers = lower_case_headers(dict(req.headers.items()) if req.headers else {})
    if headers.get("content-type") == "application/octet-stream" and headers.get("x-backup-content-type"):
        headers["content-type"] = headers["x-backup-content-type"]

    get_body = getattr(req, "get_body", None)
    body = get_body() if callable(get_body) else getattr(req, "body", None)
    if isinstance(body, str):
        body = body.encode("utf-8")

    return AzureEvent(method=req.method or "GET", url=req.url, headers=headers, body=body)


def parse_google_request(req: Any) -> GoogleEvent:
    """Parse the Flask request handed to a Google Cloud Function."""
    headers = collect_headers(req.headers.items())
    query_string = req.query_string or b""
    if isinstance(query_string, bytes):
        query_string = query_string.decode("latin-1")
    return GoogleEvent(
        method=req.method or "GET",
        host=first_header(headers, "host") or getattr(req, "host", ""),
        path=req.path or "",
        query_string=query_string,
        headers=headers,
        body=req.get_data() or None,
    )


def parse_openwhisk_params(params: Mapping[str, Any]) -> OpenWhiskEvent:
    """Parse OpenWhisk action parameters.

    Web actions receive binary and JSON bodies base64 encoded.
    """
    method = params.get(OW_METHOD) or "GET"
    headers = lower_case_headers(params.get(OW_HEADERS) or {})
    raw_body = params.get(OW_BODY) or ""
    rest = {k: v for k, v in params.items() if k not in OW_RESERVED}

    body: Optional[Union[bytes, str]] = None
    if raw_body:
        content_type = first_header(headers, "content-type")
        if is_binary_type(content_type):
            body = decode_base64_body(raw_body)
        elif content_type and "application/json" in content_type:
            body = decode_base64_body(raw_body).decode("utf-8", errors="replace")
        else:
            body = raw_body

    return OpenWhiskEvent(
        method=method,
        headers=headers,
        suffix=params.get(OW_PATH) or "",
        body=body,
        query=params.get(OW_QUERY) or "",
        params=rest,
        web=OW_METHOD in params,
    )


def parse_direct_event(event: Optional[Mapping[str, Any]]) -> DirectEvent:
    event = dict(event or {})
    records = event.get("records", event.get("Records"))
    return DirectEvent(
        query_string=event_to_query_string(event),
        records=records,
        raw=event,
    )
