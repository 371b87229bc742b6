"""Tests for the invocation environment overlay."""

import os

from core.environment import Environment, apply_secrets, update_process_env
from core.interfaces import FunctionInfo, InvocationInfo, RuntimeInfo, UniversalContext


def test_process_environment_wins_over_defaults(monkeypatch):
    monkeypatch.setenv("SHARED_KEY", "from-process")
    env = Environment.from_process({"SHARED_KEY": "default", "ONLY_DEFAULT": "x"})
    assert env["SHARED_KEY"] == "from-process"
    assert env["ONLY_DEFAULT"] == "x"


def test_merge_stringifies_and_skips_none():
    env = Environment().merge({"NUM": 42, "OBJ": {"a": 1}, "NONE": None})
    assert env.to_dict() == {"NUM": "42", "OBJ": '{"a": 1}'}


def test_merge_without_override_keeps_existing():
    env = Environment({"KEY": "old"})
    env.merge({"KEY": "new", "OTHER": "v"}, override=False)
    assert env["KEY"] == "old"
    assert env["OTHER"] == "v"


def test_commit_writes_into_target():
    target = {"UNTOUCHED": "1"}
    Environment({"A": "x"}).commit(target)
    assert target == {"UNTOUCHED": "1", "A": "x"}


def test_apply_secrets_never_overrides(monkeypatch):
    monkeypatch.setenv("EXISTING", "local")
    added = apply_secrets({"EXISTING": "remote", "NEW_SECRET": "s3cr3t"})
    assert added == 1
    assert os.environ["EXISTING"] == "local"
    assert os.environ["NEW_SECRET"] == "s3cr3t"


def test_update_process_env_commits_identity():
    context = UniversalContext(
        runtime=RuntimeInfo(name="aws-lambda"),
        func=FunctionInfo(name="dump", package="helix-pages", version="4.3.1", app="my-app"),
        invocation=InvocationInfo(id="inv-1"),
        env=Environment({"CUSTOM": "value"}),
    )
    update_process_env(context)
    assert os.environ["UNIVERSAL_RUNTIME"] == "aws-lambda"
    assert os.environ["UNIVERSAL_NAME"] == "dump"
    assert os.environ["UNIVERSAL_PACKAGE"] == "helix-pages"
    assert os.environ["UNIVERSAL_APP"] == "my-app"
    assert os.environ["UNIVERSAL_VERSION"] == "4.3.1"
    assert os.environ["CUSTOM"] == "value"


def test_context_keeps_environment_instance():
    env = Environment({"A": "1"})
    context = UniversalContext(
        runtime=RuntimeInfo(name="direct"),
        func=FunctionInfo(),
        invocation=InvocationInfo(id="inv-1"),
        env=env,
    )
    assert context.env is env
