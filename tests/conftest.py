"""Shared fixtures and fake boto3 objects."""

from __future__ import annotations

import textwrap
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from aws_activate.config_store import ConfigStore


class FakeCredentials:
    """Stands in for botocore credentials returned by Session.get_credentials()."""

    def __init__(self, access_key="ASIAEXAMPLE", secret_key="SECRET", token="", expiry=None, error=None):
        self._frozen = SimpleNamespace(access_key=access_key, secret_key=secret_key, token=token)
        self._expiry_time = expiry
        self._error = error
        self.frozen_calls = 0

    def get_frozen_credentials(self):
        self.frozen_calls += 1
        if self._error is not None:
            raise self._error
        return self._frozen


class FakeSTS:
    def __init__(self, error=None):
        self.calls: list[tuple[str, dict]] = []
        self._error = error

    def _respond(self, operation, kwargs):
        self.calls.append((operation, kwargs))
        if self._error is not None:
            raise self._error
        return {
            "Credentials": {
                "AccessKeyId": "ASIATEMPORARY",
                "SecretAccessKey": "temporary-secret",
                "SessionToken": "temporary-token",
                "Expiration": datetime(2030, 1, 1, tzinfo=timezone.utc),
            }
        }

    def assume_role(self, **kwargs):
        return self._respond("assume_role", kwargs)

    def get_session_token(self, **kwargs):
        return self._respond("get_session_token", kwargs)


class FakeSession:
    def __init__(self, credentials=None, sts=None):
        self._credentials = credentials
        self.sts = sts or FakeSTS()

    def get_credentials(self):
        return self._credentials

    def client(self, service_name):
        assert service_name == "sts"
        return self.sts


class SessionFactory:
    """Hands out FakeSessions by profile name and records who asked."""

    def __init__(self, **sessions: FakeSession) -> None:
        self.sessions = sessions
        self.calls: list[str] = []

    def __call__(self, profile_name):
        self.calls.append(profile_name)
        return self.sessions[profile_name]


class FakeLogin:
    def __init__(self, error=None):
        self.calls: list[str] = []
        self._error = error

    def login(self, session_name):
        self.calls.append(session_name)
        if self._error is not None:
            raise self._error


def make_store(tmp_path: Path, config: str = "", credentials: str | None = None) -> ConfigStore:
    config_file = tmp_path / "config"
    creds_file = tmp_path / "credentials"
    config_file.write_text(textwrap.dedent(config))
    if credentials is not None:
        creds_file.write_text(textwrap.dedent(credentials))
    return ConfigStore(config_path=config_file, credentials_path=creds_file)


SSO_CONFIG = """\
    [profile dev]
    sso_session = companysso
    sso_account_id = 111111111111
    sso_role_name = Developer
    region = us-east-1

    [sso-session companysso]
    sso_start_url = https://company.awsapps.com/start
    sso_region = us-east-1
    sso_registration_scopes = sso:account:access

    [profile prod-admin]
    role_arn = arn:aws:iam::111111111111:role/Admin
    source_profile = dev
    region = eu-west-1
"""


@pytest.fixture
def sso_store(tmp_path: Path) -> ConfigStore:
    return make_store(tmp_path, SSO_CONFIG)
