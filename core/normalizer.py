"""Header and body normalization shared by all provider adapters.

Translates between provider wire formats and the canonical ``httpx`` request
and response objects handed to and returned by the main function.
"""

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urlencode

import httpx

from core.errors import BadRequestError, InvalidResponseError, MalformedHeaderError

logger = logging.getLogger(__name__)

# Media types that are safe to transport as text; everything else is binary.
TEXT_MEDIA_TYPES = frozenset(
    [
        "text/html",
        "text/plain",
        "text/xml",
        "text/css",
        "text/csv",
        "text/javascript",
        "text/markdown",
        "application/json",
        "application/javascript",
        "application/xml",
        "application/x-www-form-urlencoded",
    ]
)
_STRUCTURED_TEXT_SUFFIX = re.compile(r"^application/[\w.\-]+\+(json|xml)$")

# token characters as defined by RFC 7230
_HEADER_NAME = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
# tab, printable ASCII and obs-text
_INVALID_HEADER_VALUE_CHAR = re.compile(r"[^\t\x20-\x7e\x80-\xff]")

# headers whose repeated values can be folded with a comma
COMMA_JOINED_HEADERS = frozenset(["vary", "server-timing"])

MAX_ERROR_HEADER_LENGTH = 1024

HeaderInput = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


def media_type(content_type: Optional[str]) -> str:
    """Return the lower-cased media type without parameters."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def is_binary_type(content_type: Optional[str]) -> bool:
    """Check if a content type has to be treated as opaque binary data.

    An absent content type is not considered binary.
    """
    if not content_type:
        return False
    mime = media_type(content_type)
    if mime in TEXT_MEDIA_TYPES:
        return False
    return not _STRUCTURED_TEXT_SUFFIX.match(mime)


def is_binary(content_type: Optional[str], content_encoding: Optional[str] = None) -> bool:
    """Check if a body with the given type and encoding is binary.

    Any content encoding (gzip, br, ...) makes the body opaque.
    """
    if content_encoding:
        return True
    return is_binary_type(content_type)


def _response_headers(response: Any) -> Any:
    if response is None:
        raise InvalidResponseError("unexpected response: None")
    headers = getattr(response, "headers", None)
    if headers is None:
        raise InvalidResponseError(f"unexpected response: no headers. is: {response!r}")
    if not callable(getattr(headers, "get", None)):
        raise InvalidResponseError('response.headers has no method "get()"')
    return headers


def ensure_utf8_charset(response: Any) -> Any:
    """Default the response content type and its charset.

    Missing content types become ``text/plain; charset=utf-8`` and ``text/html``
    without a charset gets ``;charset=UTF-8`` appended.

    Raises:
        InvalidResponseError: If the response has no usable headers
    """
    headers = _response_headers(response)
    content_type = headers.get("content-type")
    if not content_type:
        headers["content-type"] = "text/plain; charset=utf-8"
    elif media_type(content_type) == "text/html" and "charset" not in content_type.lower():
        headers["content-type"] = f"{content_type};charset=UTF-8"
    return response


def ensure_invocation_id(response: Any, context: Any) -> Any:
    """Add the ``x-invocation-id`` header unless the handler already set one."""
    headers = _response_headers(response)
    if not headers.get("x-invocation-id"):
        headers["x-invocation-id"] = context.invocation.id
    return response


def _header_pairs(headers: Any) -> List[Tuple[str, str]]:
    if hasattr(headers, "multi_items"):
        return [(k.lower(), v) for k, v in headers.multi_items()]
    pairs = headers.items() if isinstance(headers, Mapping) else headers
    result = []
    for name, value in pairs:
        values = value if isinstance(value, (list, tuple)) else [value]
        result.extend((name.lower(), str(v)) for v in values if v is not None)
    return result


def split_headers(headers: Any) -> Tuple[Dict[str, str], List[str]]:
    """Split a header multimap into single-value headers and cookies.

    ``set-cookie`` values are collected into the cookie list, ``vary`` and
    ``server-timing`` are folded with ``, `` and any other repeated header is
    folded with a single space.

    Returns:
        Tuple of (single_value_headers, cookies)
    """
    grouped: Dict[str, List[str]] = {}
    for name, value in _header_pairs(headers):
        grouped.setdefault(name, []).append(value)

    single: Dict[str, str] = {}
    cookies: List[str] = []
    for name, values in grouped.items():
        if name == "set-cookie":
            cookies.extend(values)
        elif len(values) == 1:
            single[name] = values[0]
        elif name in COMMA_JOINED_HEADERS:
            single[name] = ", ".join(values)
        else:
            logger.warning(
                f"Header '{name}' has {len(values)} values, joining with space",
                extra={"header": name},
            )
            single[name] = " ".join(values)
    return single, cookies


def cleanup_header_value(message: Any) -> str:
    """Make an error message safe to echo back in a response header."""
    cleaned = _INVALID_HEADER_VALUE_CHAR.sub("", str(message)).strip()
    return cleaned[:MAX_ERROR_HEADER_LENGTH]


def reconcile_cookie_header(headers: Dict[str, Any], cookies: Optional[Sequence[str]]) -> Dict[str, Any]:
    """Synthesize a ``cookie`` header from separate cookie strings.

    An existing ``cookie`` header always wins.
    """
    if cookies and not headers.get("cookie"):
        headers["cookie"] = ";".join(cookies)
    return headers


def lower_case_headers(headers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Return a copy of the headers with lower-cased names."""
    if not headers:
        return {}
    return {str(k).lower(): v for k, v in headers.items()}


def validate_header(name: str, value: str) -> None:
    """Reject header names and values that are illegal in HTTP.

    Raises:
        MalformedHeaderError: If the name or value contains invalid characters
    """
    if not _HEADER_NAME.match(name):
        raise MalformedHeaderError(f'Header name must be a valid HTTP token ["{cleanup_header_value(name)}"]')
    if _INVALID_HEADER_VALUE_CHAR.search(value):
        raise MalformedHeaderError(f'Invalid character in header content ["{name}"]')


def build_request(
    method: str,
    url: str,
    headers: Optional[HeaderInput] = None,
    body: Optional[Union[bytes, str]] = None,
) -> httpx.Request:
    """Build the canonical request handed to the main function.

    Args:
        method: HTTP method
        url: Absolute request URL
        headers: Header mapping or pairs; list values become repeated headers
        body: Request body

    Raises:
        MalformedHeaderError: If a header is illegal
        BadRequestError: If a GET or HEAD request carries a body
    """
    method = (method or "GET").upper()
    raw_headers = []
    for name, value in _header_pairs(headers or {}):
        validate_header(name, value)
        raw_headers.append((name, value.encode("latin-1")))

    if isinstance(body, str):
        body = body.encode("utf-8")
    if body and method in ("GET", "HEAD"):
        raise BadRequestError(f"{method} request must not have a body")

    return httpx.Request(method, url, headers=raw_headers, content=body or None)


def event_to_query_string(event: Mapping[str, Any]) -> str:
    """Build a query string out of the string-valued properties of an event."""
    return urlencode([(k, v) for k, v in event.items() if isinstance(v, str)])


async def read_body(response: Any) -> bytes:
    """Read the full response body as bytes.

    Content-encoded bodies of ``httpx`` responses are returned still encoded,
    since the encoding header is passed on to the client.
    """
    stream = getattr(response, "stream", None)
    if response.headers.get("content-encoding") and isinstance(stream, httpx.ByteStream):
        return b"".join(stream)
    try:
        content = response.content
    except httpx.ResponseNotRead:
        content = await response.aread()
    if isinstance(content, str):
        return content.encode("utf-8")
    return content or b""


async def read_text(response: Any) -> str:
    body = await read_body(response)
    charset = None
    content_type = response.headers.get("content-type") or ""
    match = re.search(r"charset=\"?([\w\-]+)", content_type, re.IGNORECASE)
    if match:
        charset = match.group(1)
    try:
        return body.decode(charset or "utf-8")
    except (LookupError, UnicodeDecodeError):
        return body.decode("utf-8", errors="replace")


async def read_trigger_result(response: Any) -> Any:
    """Return the body of a response to a non-HTTP invocation.

    JSON bodies are decoded, everything else is returned as text.
    """
    if media_type(response.headers.get("content-type")) == "application/json":
        return json.loads(await read_text(response))
    return await read_text(response)
