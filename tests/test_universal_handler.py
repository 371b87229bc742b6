"""Tests for the provider-independent invocation flow."""

import json
import logging
import os

import httpx
import pytest

from core.errors import BadRequestError
from core.events import DirectEvent, parse_direct_event
from core.interfaces import FunctionInfo, InvocationInfo, RuntimeInfo, UniversalContext
from core.logging_utils import InvocationLogger
from core.normalizer import build_request, read_text
from core.validators import AdapterSettings
from server.universal_handler import UniversalAdapter, error_headers, import_main


class RecordingAdapter(UniversalAdapter):
    """Plain-dict envelope adapter over direct events."""

    runtime_name = "test-runtime"

    def parse_event(self, event, context):
        return parse_direct_event(event)

    def build_context(self, parsed: DirectEvent, event, context):
        return UniversalContext(
            runtime=RuntimeInfo(name=self.runtime_name),
            func=FunctionInfo(name="fn", package="pkg", version="1.0"),
            invocation=InvocationInfo(id="inv-1", event=parsed.raw),
        )

    def build_request(self, parsed: DirectEvent, ctx):
        return build_request(parsed.raw.get("method", "GET"), "https://localhost/", body=parsed.raw.get("body"))

    async def to_envelope(self, response, parsed, ctx):
        return {
            "status": response.status_code,
            "headers": dict(response.headers),
            "body": await read_text(response),
        }

    def error_response(self, status, message, invocation_id, expose_error=True):
        return {"status": status, "headers": error_headers(message, invocation_id, expose_error), "body": message}


class FlushingLog:
    def __init__(self, fail=False):
        self.flushed = False
        self.fail = fail

    async def flush(self):
        if self.fail:
            raise ConnectionError("log sink unavailable")
        self.flushed = True


class TestImportMain:
    def test_imports_attribute(self):
        assert import_main("json:dumps")() is json.dumps

    def test_import_is_lazy(self):
        factory = import_main("module_that_does_not_exist:main")
        with pytest.raises(ModuleNotFoundError):
            factory()

    def test_missing_attribute(self):
        with pytest.raises(ImportError, match="no attribute 'main'"):
            import_main("json")()

    def test_missing_module_name(self):
        with pytest.raises(ValueError):
            import_main(":main")


class TestErrorHeaders:
    def test_exposed_error(self):
        assert error_headers("boom\nbang", "inv-1") == {
            "content-type": "text/plain",
            "x-invocation-id": "inv-1",
            "x-error": "boombang",
        }

    def test_hidden_error(self):
        assert "x-error" not in error_headers("boom", "inv-1", expose_error=False)


class TestUniversalAdapter:
    @pytest.mark.asyncio
    async def test_successful_invocation(self):
        seen = {}

        async def main(request, context):
            seen["log"] = context.log
            seen["env"] = os.environ.get("UNIVERSAL_NAME")
            return httpx.Response(200, headers={"content-type": "text/html"}, content=b"<p>hi</p>")

        result = await RecordingAdapter(lambda: main, AdapterSettings())({})

        assert result["status"] == 200
        assert result["body"] == "<p>hi</p>"
        assert result["headers"]["content-type"] == "text/html;charset=UTF-8"
        assert result["headers"]["x-invocation-id"] == "inv-1"
        assert isinstance(seen["log"], InvocationLogger)
        assert seen["env"] == "fn"

    @pytest.mark.asyncio
    async def test_main_factory_called_once(self):
        calls = []

        def factory():
            calls.append(1)
            return lambda request, context: httpx.Response(204)

        adapter = RecordingAdapter(factory, AdapterSettings())
        await adapter({})
        await adapter({})
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_bad_request_hides_error(self):
        result = await RecordingAdapter(lambda: None, AdapterSettings())({"method": "GET", "body": "x"})
        assert result["status"] == 400
        assert result["headers"]["x-invocation-id"] == "inv-1"
        assert "x-error" not in result["headers"]

    @pytest.mark.asyncio
    async def test_unparseable_event_returns_error_response(self):
        class BrokenContextAdapter(RecordingAdapter):
            def invocation_id(self, event, context=None):
                return "fallback-id"

            def build_context(self, parsed, event, context):
                raise KeyError("missing field")

        result = await BrokenContextAdapter(lambda: None, AdapterSettings())({})
        assert result["status"] == 500
        assert result["headers"]["x-invocation-id"] == "fallback-id"
        assert "missing field" in result["headers"]["x-error"]

    @pytest.mark.asyncio
    async def test_bad_event_is_400_without_error_header(self):
        class BadEventAdapter(RecordingAdapter):
            def parse_event(self, event, context):
                raise BadRequestError("request body is not valid base64")

        result = await BadEventAdapter(lambda: None, AdapterSettings())({})
        assert result["status"] == 400
        assert "x-error" not in result["headers"]
        assert result["headers"]["x-invocation-id"]

    @pytest.mark.asyncio
    async def test_invalid_response_is_500(self):
        result = await RecordingAdapter(lambda: lambda request, context: None, AdapterSettings())({})
        assert result["status"] == 500
        assert result["headers"]["x-invocation-id"] == "inv-1"

    @pytest.mark.asyncio
    async def test_async_flush_is_awaited(self):
        log = FlushingLog()

        def main(request, context):
            context.log = log
            return httpx.Response(204)

        result = await RecordingAdapter(lambda: main, AdapterSettings())({})
        assert result["status"] == 204
        assert log.flushed is True

    @pytest.mark.asyncio
    async def test_failing_flush_keeps_response(self, caplog):
        def main(request, context):
            context.log = FlushingLog(fail=True)
            return httpx.Response(200, headers={"content-type": "text/plain"}, content=b"kept")

        with caplog.at_level(logging.ERROR, logger="server.universal_handler"):
            result = await RecordingAdapter(lambda: main, AdapterSettings())({})

        assert result["status"] == 200
        assert result["body"] == "kept"
        assert any("Failed to flush" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_log_flushed_after_error(self):
        log = FlushingLog()

        def main(request, context):
            context.log = log
            raise RuntimeError("failed")

        result = await RecordingAdapter(lambda: main, AdapterSettings())({})
        assert result["status"] == 500
        assert result["headers"]["x-error"] == "failed"
        assert log.flushed is True
