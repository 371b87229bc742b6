"""Deployable handler entry points.

Point the provider at the handler for its runtime, e.g. the Lambda handler
setting ``server.entrypoints.lambda_handler``. Main is imported lazily from
``UNIVERSAL_MAIN`` (``module:attribute``, default ``main:main``) on the first
invocation.
"""

import logging
import os

from core.logging_utils import configure_json_logging
from core.validators import ConfigurationError, get_settings
from server.adapters import aws_lambda, azure_functions, direct, google_cloud, openwhisk
from server.universal_handler import import_main

MAIN_ENV = "UNIVERSAL_MAIN"
DEFAULT_MAIN = "main:main"

logger = logging.getLogger(__name__)

try:
    settings = get_settings()
except ConfigurationError as e:
    # Configuration errors must fail the cold start
    logger.error(f"Configuration error: {e}")
    raise

configure_json_logging(level=settings.logging.level, pretty=settings.logging.pretty)

main_ref = os.environ.get(MAIN_ENV, DEFAULT_MAIN)
main_factory = import_main(main_ref)

lambda_handler = aws_lambda(main_factory, settings)
azure_handler = azure_functions(main_factory, settings)
google_handler = google_cloud(main_factory, settings)
openwhisk_handler = openwhisk(main_factory, settings)
direct_handler = direct(main_factory, settings)

logger.info(f"Universal handlers ready for main '{main_ref}'")
