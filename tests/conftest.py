"""Shared fixtures for adapter tests."""

import os
import time

import pytest

from core.validators import get_settings


class FakeLambdaContext:
    """Minimal AWS Lambda context object."""

    def __init__(
        self,
        request_id="test-request-id-123",
        arn="arn:aws:lambda:us-east-1:118435662149:function:helix-pages--dump:4_3_1",
        remaining_ms=60000,
    ):
        self.aws_request_id = request_id
        self.invoked_function_arn = arn
        self.function_name = arn.split(":")[6]
        self.memory_limit_in_mb = 512
        self._deadline = time.time() * 1000 + remaining_ms

    def get_remaining_time_in_millis(self):
        return int(self._deadline - time.time() * 1000)


@pytest.fixture(autouse=True)
def restore_environ():
    """Adapters commit the invocation environment into os.environ; undo it after each test."""
    saved = dict(os.environ)
    get_settings.cache_clear()
    yield
    os.environ.clear()
    os.environ.update(saved)
    get_settings.cache_clear()


@pytest.fixture
def lambda_context():
    return FakeLambdaContext()
