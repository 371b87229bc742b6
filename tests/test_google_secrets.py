"""Tests for the Google Secret Manager plugin."""

import base64
import json

import httpx
import pytest
from tenacity import wait_none

from core.errors import SecretsError
from plugins.google.secrets import GoogleSecretsLoader


def secret_payload(data):
    encoded = base64.b64encode(json.dumps(data).encode()).decode()
    return {"name": "projects/p/secrets/s/versions/1", "payload": {"data": encoded}}


class SecretManagerStub:
    """Routes metadata and Secret Manager calls to canned responses."""

    def __init__(self, statuses=None, secret=None):
        self.statuses = list(statuses or [200])
        self.secret = secret or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "metadata.google.internal":
            assert request.headers["Metadata-Flavor"] == "Google"
            if request.url.path.endswith("/token"):
                return httpx.Response(200, json={"access_token": "token-1", "expires_in": 3600})
            return httpx.Response(200, text="metadata-project\n")

        assert request.headers["Authorization"] == "Bearer token-1"
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if status != 200:
            return httpx.Response(status, json={"error": {"code": status}})
        return httpx.Response(200, json=secret_payload(self.secret))

    def secret_requests(self):
        return [r for r in self.requests if r.url.host == "secretmanager.googleapis.com"]


def make_loader(stub, **kwargs):
    kwargs.setdefault("project", "helix-225321")
    return GoogleSecretsLoader(transport=httpx.MockTransport(stub), wait=wait_none(), **kwargs)


class TestGoogleSecretsLoader:
    @pytest.mark.asyncio
    async def test_loads_latest_version(self):
        stub = SecretManagerStub(secret={"API_TOKEN": "abc"})
        assert await make_loader(stub).load("universal--pkg") == {"API_TOKEN": "abc"}

        (request,) = stub.secret_requests()
        assert request.url.path == "/v1/projects/helix-225321/secrets/universal--pkg/versions/latest:access"

    @pytest.mark.asyncio
    async def test_project_from_metadata_server(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
        monkeypatch.delenv("GCP_PROJECT", raising=False)
        stub = SecretManagerStub(secret={"A": "1"})
        loader = GoogleSecretsLoader(transport=httpx.MockTransport(stub), wait=wait_none())

        assert await loader.load("universal--pkg") == {"A": "1"}
        assert loader.project == "metadata-project"

    @pytest.mark.asyncio
    async def test_missing_secret_is_empty(self):
        stub = SecretManagerStub(statuses=[404])
        assert await make_loader(stub).load("universal--pkg") == {}

    @pytest.mark.asyncio
    async def test_throttling_is_retried_then_429(self):
        stub = SecretManagerStub(statuses=[429])
        with pytest.raises(SecretsError) as exc_info:
            await make_loader(stub, retry_attempts=2).load("universal--pkg")
        assert exc_info.value.status_code == 429
        assert len(stub.secret_requests()) == 2

    @pytest.mark.asyncio
    async def test_throttling_recovers(self):
        stub = SecretManagerStub(statuses=[429, 200], secret={"A": "1"})
        assert await make_loader(stub).load("universal--pkg") == {"A": "1"}
        assert len(stub.secret_requests()) == 2

    @pytest.mark.asyncio
    async def test_server_error_is_500(self):
        stub = SecretManagerStub(statuses=[503])
        with pytest.raises(SecretsError) as exc_info:
            await make_loader(stub).load("universal--pkg")
        assert exc_info.value.status_code == 500
        assert len(stub.secret_requests()) == 1

    def test_function_identity_from_service(self, monkeypatch):
        monkeypatch.setenv("K_SERVICE", "simple-package--simple-name")
        loader = make_loader(SecretManagerStub())
        identity = loader.function_identity(None, None)
        assert identity == {"package": "simple-package", "name": "simple-name"}
        assert loader.secret_name(identity["package"]) == "universal--simple-package"
