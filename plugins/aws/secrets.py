"""AWS Secrets Manager plugin.

Loads the JSON secret of the function's package and exposes its keys as
environment variables before main runs.
"""

import asyncio
import json
import logging
import os
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from core.errors import SecretsError
from core.interfaces import AdapterFunction
from core.secrets import SecretsLoader, SecretsMiddleware
from core.validators import get_settings

logger = logging.getLogger(__name__)

THROTTLING = "ThrottlingException"
NOT_FOUND = "ResourceNotFoundException"


def _error_code(error: BaseException) -> Optional[str]:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None


def _is_throttled(error: BaseException) -> bool:
    return _error_code(error) == THROTTLING


class AwsSecretsLoader(SecretsLoader):
    def __init__(
        self,
        name_template: str = "/universal/{package}/all",
        retry_attempts: int = 3,
        region: Optional[str] = None,
        client: Any = None,
        wait: Any = None,
    ) -> None:
        super().__init__(name_template)
        self.retry_attempts = retry_attempts
        self.region = region
        self.wait = wait or wait_exponential(multiplier=0.5, min=0.5, max=4)
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client(
                "secretsmanager", region_name=self.region or os.environ.get("AWS_REGION")
            )
        return self._client

    def function_identity(self, event: Any, context: Any) -> Dict[str, Optional[str]]:
        # arn:aws:lambda:<region>:<account>:function:<package>--<name>[:<alias>]
        arn = getattr(context, "invoked_function_arn", None) or ""
        parts = arn.split(":")
        function_name = parts[6] if len(parts) > 6 else os.environ.get("AWS_LAMBDA_FUNCTION_NAME", "")
        package, _, name = function_name.partition("--")
        return {"package": package, "name": name or None}

    async def load(self, secret_name: str) -> Dict[str, str]:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=self.wait,
                retry=retry_if_exception(_is_throttled),
                reraise=True,
            ):
                with attempt:
                    response = await asyncio.to_thread(
                        self.client.get_secret_value, SecretId=secret_name
                    )
        except ClientError as e:
            code = _error_code(e)
            if code == NOT_FOUND:
                logger.info(f"No secret found at '{secret_name}'")
                return {}
            logger.error(f"Unable to load function params from '{secret_name}': {e}")
            raise SecretsError(
                "unable to load function params", status_code=429 if code == THROTTLING else None
            ) from e
        except BotoCoreError as e:
            logger.error(f"Unable to load function params from '{secret_name}': {e}")
            raise SecretsError("unable to load function params") from e

        try:
            return json.loads(response.get("SecretString") or "{}")
        except json.JSONDecodeError as e:
            raise SecretsError(f"secret '{secret_name}' is not valid JSON") from e


def aws_secrets_plugin(fn: AdapterFunction, **options: Any) -> AdapterFunction:
    """Plugin applying the package secrets from AWS Secrets Manager.

    Options:
        loader: Custom ``SecretsLoader``; defaults to one built from settings
        settings: ``AdapterSettings`` to use instead of the process settings
        expiration: Cache lifetime in seconds
    """
    settings = (options.get("settings") or get_settings()).secrets
    loader = options.get("loader") or AwsSecretsLoader(
        name_template=settings.aws_name_template,
        retry_attempts=settings.retry_attempts,
    )
    expiration = options.get("expiration", settings.expiration_seconds)
    return SecretsMiddleware(loader, expiration)(fn)
