"""Google Secret Manager plugin.

Uses the metadata server for the access token and project id and reads the
latest secret version through the Secret Manager REST API.
"""

import base64
import json
import logging
import os
from typing import Any, Dict, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from core.errors import SecretsError
from core.interfaces import AdapterFunction
from core.secrets import SecretsLoader, SecretsMiddleware
from core.validators import get_settings

logger = logging.getLogger(__name__)

METADATA_URL = "http://metadata.google.internal/computeMetadata/v1"
SECRET_MANAGER_URL = "https://secretmanager.googleapis.com/v1"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}


def _is_throttled(error: BaseException) -> bool:
    return isinstance(error, httpx.HTTPStatusError) and error.response.status_code == 429


class GoogleSecretsLoader(SecretsLoader):
    def __init__(
        self,
        name_template: str = "universal--{package}",
        retry_attempts: int = 3,
        project: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
        wait: Any = None,
    ) -> None:
        super().__init__(name_template)
        self.retry_attempts = retry_attempts
        self.project = project or os.environ.get("GOOGLE_CLOUD_PROJECT") or os.environ.get("GCP_PROJECT")
        self.transport = transport
        self.timeout = timeout
        self.wait = wait or wait_exponential(multiplier=0.5, min=0.5, max=4)

    def function_identity(self, event: Any, context: Any) -> Dict[str, Optional[str]]:
        package, _, name = os.environ.get("K_SERVICE", "").partition("--")
        return {"package": package, "name": name or None}

    async def _metadata(self, client: httpx.AsyncClient, path: str) -> httpx.Response:
        response = await client.get(f"{METADATA_URL}/{path}", headers=METADATA_HEADERS)
        response.raise_for_status()
        return response

    async def _access(self, client: httpx.AsyncClient, secret_name: str) -> Dict[str, str]:
        token = (await self._metadata(client, "instance/service-accounts/default/token")).json()
        if not self.project:
            self.project = (await self._metadata(client, "project/project-id")).text.strip()

        response = await client.get(
            f"{SECRET_MANAGER_URL}/projects/{self.project}/secrets/{secret_name}/versions/latest:access",
            headers={"Authorization": f"Bearer {token['access_token']}"},
        )
        if response.status_code == 404:
            logger.info(f"No secret found at '{secret_name}'")
            return {}
        response.raise_for_status()
        data = response.json().get("payload", {}).get("data", "")
        return json.loads(base64.b64decode(data).decode("utf-8")) if data else {}

    async def load(self, secret_name: str) -> Dict[str, str]:
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.retry_attempts),
                    wait=self.wait,
                    retry=retry_if_exception(_is_throttled),
                    reraise=True,
                ):
                    with attempt:
                        secrets = await self._access(client, secret_name)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"Unable to load function params from '{secret_name}': {e}")
            raise SecretsError(
                "unable to load function params", status_code=429 if status == 429 else None
            ) from e
        except (httpx.HTTPError, json.JSONDecodeError, ValueError) as e:
            logger.error(f"Unable to load function params from '{secret_name}': {e}")
            raise SecretsError("unable to load function params") from e
        return secrets


def google_secrets_plugin(fn: AdapterFunction, **options: Any) -> AdapterFunction:
    """Plugin applying the package secrets from Google Secret Manager.

    Options:
        loader: Custom ``SecretsLoader``; defaults to one built from settings
        settings: ``AdapterSettings`` to use instead of the process settings
        expiration: Cache lifetime in seconds
    """
    settings = (options.get("settings") or get_settings()).secrets
    loader = options.get("loader") or GoogleSecretsLoader(
        name_template=settings.google_name_template,
        retry_attempts=settings.retry_attempts,
    )
    expiration = options.get("expiration", settings.expiration_seconds)
    return SecretsMiddleware(loader, expiration)(fn)
