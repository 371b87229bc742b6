"""Resolvers for the URLs of sibling functions on the same provider."""

from typing import Optional

from core.interfaces import Resolver


class AwsResolver(Resolver):
    """Functions deployed behind the same API Gateway host.

    Routes are mounted as ``/<package>/<name>/<version>``.
    """

    def __init__(self, host: str) -> None:
        self.host = host

    def create_url(self, package: str, name: str, version: str) -> str:
        return f"https://{self.host}/{package}/{name}/{version}"


class AzureResolver(Resolver):
    """Functions of the same function app, routed under ``/api``."""

    def __init__(self, host: str) -> None:
        self.host = host

    def create_url(self, package: str, name: str, version: str) -> str:
        return f"https://{self.host}/api/{package}/{name}/{version}"


class GoogleResolver(Resolver):
    """Cloud Functions in the same project and region.

    Function names cannot contain dots, so versions are deployed with
    underscores instead.
    """

    def __init__(self, region: Optional[str], project: Optional[str]) -> None:
        self.region = region
        self.project = project

    def create_url(self, package: str, name: str, version: str) -> str:
        version = version.replace(".", "_")
        return f"https://{self.region}-{self.project}.cloudfunctions.net/{package}--{name}_{version}"


class OpenWhiskResolver(Resolver):
    """Web actions in the same namespace."""

    def __init__(self, api_host: str, namespace: str) -> None:
        self.api_host = api_host.rstrip("/")
        self.namespace = namespace

    def create_url(self, package: str, name: str, version: str) -> str:
        return f"{self.api_host}/api/v1/web/{self.namespace}/{package}/{name}@{version}"


class DirectResolver(Resolver):
    """Resolver for direct invocations, which have no addressable host."""

    def __init__(self, base_url: str = "http://localhost") -> None:
        self.base_url = base_url.rstrip("/")

    def create_url(self, package: str, name: str, version: str) -> str:
        return f"{self.base_url}/{package}/{name}/{version}"
