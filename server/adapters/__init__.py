"""Provider adapters.

Each factory takes the main factory and returns a ``UniversalHandler`` with
the provider's default plugins installed. ``handler.raw`` is the unwrapped
adapter for callers assembling their own plugin chain.
"""

from typing import Any, Mapping, Optional

from core.interfaces import MainFactory
from core.plugin_chain import UniversalHandler, wrap
from core.validators import AdapterSettings
from plugins.aws.secrets import aws_secrets_plugin
from plugins.google.secrets import google_secrets_plugin

from .aws_lambda import AwsLambdaAdapter
from .azure_functions import AzureFunctionsAdapter
from .direct import DirectAdapter
from .google_cloud import GoogleCloudAdapter
from .openwhisk import OpenWhiskAdapter


def aws_lambda(main_factory: MainFactory, settings: Optional[AdapterSettings] = None) -> UniversalHandler:
    return wrap(AwsLambdaAdapter(main_factory, settings)).with_plugin(aws_secrets_plugin, settings=settings)


def azure_functions(
    main_factory: MainFactory,
    settings: Optional[AdapterSettings] = None,
    params: Optional[Mapping[str, Any]] = None,
) -> UniversalHandler:
    return wrap(AzureFunctionsAdapter(main_factory, settings, params=params))


def google_cloud(main_factory: MainFactory, settings: Optional[AdapterSettings] = None) -> UniversalHandler:
    return wrap(GoogleCloudAdapter(main_factory, settings)).with_plugin(google_secrets_plugin, settings=settings)


def openwhisk(main_factory: MainFactory, settings: Optional[AdapterSettings] = None) -> UniversalHandler:
    return wrap(OpenWhiskAdapter(main_factory, settings))


def direct(main_factory: MainFactory, settings: Optional[AdapterSettings] = None, **identity: Any) -> UniversalHandler:
    return wrap(DirectAdapter(main_factory, settings, **identity))


__all__ = [
    "AwsLambdaAdapter",
    "AzureFunctionsAdapter",
    "DirectAdapter",
    "GoogleCloudAdapter",
    "OpenWhiskAdapter",
    "aws_lambda",
    "azure_functions",
    "direct",
    "google_cloud",
    "openwhisk",
]
