"""Tests for sibling function URL resolvers."""

from core.resolver import AwsResolver, AzureResolver, DirectResolver, GoogleResolver, OpenWhiskResolver


def test_aws_resolver():
    resolver = AwsResolver("abc123.execute-api.us-east-1.amazonaws.com")
    assert resolver.create_url("helix-services", "content-proxy", "v2") == (
        "https://abc123.execute-api.us-east-1.amazonaws.com/helix-services/content-proxy/v2"
    )


def test_azure_resolver():
    resolver = AzureResolver("myapp.azurewebsites.net")
    assert resolver.create_url("pkg", "fn", "1.0.0") == "https://myapp.azurewebsites.net/api/pkg/fn/1.0.0"


def test_google_resolver_replaces_dots():
    resolver = GoogleResolver("us-central1", "helix-225321")
    assert resolver.create_url("helix-services", "content-proxy", "4.3.1") == (
        "https://us-central1-helix-225321.cloudfunctions.net/helix-services--content-proxy_4_3_1"
    )


def test_openwhisk_resolver():
    resolver = OpenWhiskResolver("https://adobeioruntime.net/", "helix")
    assert resolver.create_url("pkg", "fn", "1.2.3") == (
        "https://adobeioruntime.net/api/v1/web/helix/pkg/fn@1.2.3"
    )


def test_direct_resolver():
    assert DirectResolver().create_url("pkg", "fn", "1") == "http://localhost/pkg/fn/1"
