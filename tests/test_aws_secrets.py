"""Tests for the AWS Secrets Manager plugin."""

import json
import os
from unittest.mock import MagicMock, patch

import httpx
import pytest
from botocore.exceptions import ClientError
from tenacity import wait_none

from core.errors import SecretsError
from core.secrets import SecretsMiddleware
from core.validators import AdapterSettings
from plugins.aws.secrets import AwsSecretsLoader
from server.adapters import aws_lambda
from tests.conftest import FakeLambdaContext


def client_error(code):
    return ClientError({"Error": {"Code": code, "Message": code}}, "GetSecretValue")


def secret_client(secret=None, side_effect=None):
    client = MagicMock()
    if side_effect is not None:
        client.get_secret_value.side_effect = side_effect
    else:
        client.get_secret_value.return_value = {"SecretString": json.dumps(secret or {})}
    return client


class TestAwsSecretsLoader:
    @pytest.mark.asyncio
    async def test_loads_secret(self):
        client = secret_client({"API_TOKEN": "abc"})
        loader = AwsSecretsLoader(client=client)
        assert await loader.load("/universal/pkg/all") == {"API_TOKEN": "abc"}
        client.get_secret_value.assert_called_once_with(SecretId="/universal/pkg/all")

    @pytest.mark.asyncio
    async def test_not_found_is_empty(self):
        loader = AwsSecretsLoader(client=secret_client(side_effect=client_error("ResourceNotFoundException")))
        assert await loader.load("/universal/pkg/all") == {}

    @pytest.mark.asyncio
    async def test_throttling_is_retried_then_429(self):
        client = secret_client(side_effect=client_error("ThrottlingException"))
        loader = AwsSecretsLoader(client=client, retry_attempts=3, wait=wait_none())
        with pytest.raises(SecretsError) as exc_info:
            await loader.load("/universal/pkg/all")
        assert exc_info.value.status_code == 429
        assert client.get_secret_value.call_count == 3

    @pytest.mark.asyncio
    async def test_throttling_recovers(self):
        client = secret_client(
            side_effect=[client_error("ThrottlingException"), {"SecretString": '{"A": "1"}'}]
        )
        loader = AwsSecretsLoader(client=client, wait=wait_none())
        assert await loader.load("/universal/pkg/all") == {"A": "1"}

    @pytest.mark.asyncio
    async def test_other_errors_are_500(self):
        loader = AwsSecretsLoader(client=secret_client(side_effect=client_error("AccessDeniedException")))
        with pytest.raises(SecretsError) as exc_info:
            await loader.load("/universal/pkg/all")
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_cache_until_expiration(self):
        client = secret_client({"A": "1"})
        loader = AwsSecretsLoader(client=client)
        await loader.get("/universal/pkg/all", expiration=3600)
        await loader.get("/universal/pkg/all", expiration=3600)
        assert client.get_secret_value.call_count == 1

        await loader.get("/universal/pkg/all", expiration=0)
        assert client.get_secret_value.call_count == 2

    @pytest.mark.asyncio
    async def test_clear_forces_reload(self):
        client = secret_client({"A": "1"})
        loader = AwsSecretsLoader(client=client)
        await loader.get("/universal/pkg/all")
        loader.clear()
        await loader.get("/universal/pkg/all")
        assert client.get_secret_value.call_count == 2

    def test_function_identity_from_arn(self):
        loader = AwsSecretsLoader(client=MagicMock())
        identity = loader.function_identity({}, FakeLambdaContext())
        assert identity == {"package": "helix-pages", "name": "dump"}
        assert loader.secret_name(identity["package"]) == "/universal/helix-pages/all"

    def test_function_without_package_uses_function_name(self):
        loader = AwsSecretsLoader(client=MagicMock())
        context = FakeLambdaContext(arn="arn:aws:lambda:us-east-1:123:function:dump")
        assert loader.function_identity({}, context)["package"] == "dump"


class TestSecretsMiddleware:
    @pytest.mark.asyncio
    async def test_secrets_do_not_override_environment(self, monkeypatch):
        monkeypatch.setenv("LOCAL_ONLY", "local")
        loader = AwsSecretsLoader(client=secret_client({"LOCAL_ONLY": "remote", "FROM_SECRET": "s"}))
        seen = {}

        async def handler(event, context=None):
            seen["LOCAL_ONLY"] = os.environ["LOCAL_ONLY"]
            seen["FROM_SECRET"] = os.environ["FROM_SECRET"]
            return "ok"

        wrapped = SecretsMiddleware(loader)(handler)
        assert await wrapped({}, FakeLambdaContext()) == "ok"
        assert seen == {"LOCAL_ONLY": "local", "FROM_SECRET": "s"}


class TestDefaultLambdaHandler:
    def http_event(self):
        return {
            "version": "2.0",
            "rawPath": "/",
            "headers": {"host": "example.com"},
            "requestContext": {"domainName": "example.com", "http": {"method": "GET"}},
        }

    @patch("plugins.aws.secrets.boto3")
    def test_secrets_available_to_main(self, mock_boto3):
        mock_boto3.client.return_value = secret_client({"DB_PASSWORD": "hunter2"})
        seen = {}

        def main(request, context):
            seen["env"] = context.env.get("DB_PASSWORD")
            return httpx.Response(200, content=b"")

        result = aws_lambda(lambda: main, AdapterSettings())(self.http_event(), FakeLambdaContext())

        assert result["statusCode"] == 200
        assert seen["env"] == "hunter2"
        mock_boto3.client.assert_called_once_with("secretsmanager", region_name=os.environ.get("AWS_REGION"))
        mock_boto3.client.return_value.get_secret_value.assert_called_once_with(
            SecretId="/universal/helix-pages/all"
        )

    @patch("plugins.aws.secrets.boto3")
    def test_throttled_secrets_become_429(self, mock_boto3):
        mock_boto3.client.return_value = secret_client(side_effect=client_error("ThrottlingException"))
        settings = AdapterSettings(secrets={"retry_attempts": 1})

        result = aws_lambda(lambda: None, settings)(self.http_event(), FakeLambdaContext())

        assert result["statusCode"] == 429
        assert result["headers"]["x-error"] == "unable to load function params"
        assert result["headers"]["x-invocation-id"] == "test-request-id-123"

    @patch("plugins.aws.secrets.boto3")
    def test_secrets_errors_propagate_for_triggers(self, mock_boto3):
        mock_boto3.client.return_value = secret_client(side_effect=client_error("AccessDeniedException"))
        with pytest.raises(SecretsError):
            aws_lambda(lambda: None, AdapterSettings())({"Records": []}, FakeLambdaContext())
