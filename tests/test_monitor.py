"""Tests for aws_activate.monitor"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from botocore.exceptions import NoCredentialsError, UnauthorizedSSOTokenError
from conftest import FakeCredentials, FakeLogin, FakeSession, SessionFactory, make_store
from freezegun import freeze_time

from aws_activate.errors import ProfileNotFound, RefreshUnsupported, SsoLoginFailure
from aws_activate.monitor import CredentialStatus, ExpirationMonitor

FROZEN = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _monitor(store, factory, login=None) -> ExpirationMonitor:
    return ExpirationMonitor(store, login_service=login or FakeLogin(), session_factory=factory)


def _with_expiry(store, expiry) -> ExpirationMonitor:
    return _monitor(store, SessionFactory(dev=FakeSession(FakeCredentials(expiry=expiry))))


class TestCheckStatus:
    @freeze_time(FROZEN)
    def test_expiring_exactly_at_window_is_expiring_soon(self, sso_store) -> None:
        monitor = _with_expiry(sso_store, FROZEN + timedelta(minutes=5))
        assert monitor.check_status("dev") is CredentialStatus.EXPIRING_SOON

    @freeze_time(FROZEN)
    def test_expiring_just_after_window_is_valid(self, sso_store) -> None:
        monitor = _with_expiry(sso_store, FROZEN + timedelta(minutes=5, seconds=1))
        assert monitor.check_status("dev") is CredentialStatus.VALID

    @freeze_time(FROZEN)
    def test_expiry_now_is_expired(self, sso_store) -> None:
        assert _with_expiry(sso_store, FROZEN).check_status("dev") is CredentialStatus.EXPIRED

    @freeze_time(FROZEN)
    def test_past_expiry_is_expired(self, sso_store) -> None:
        monitor = _with_expiry(sso_store, FROZEN - timedelta(hours=1))
        assert monitor.check_status("dev") is CredentialStatus.EXPIRED

    def test_no_expiry_is_valid(self, sso_store) -> None:
        assert _with_expiry(sso_store, None).check_status("dev") is CredentialStatus.VALID

    @freeze_time(FROZEN)
    def test_check_is_idempotent(self, sso_store) -> None:
        monitor = _with_expiry(sso_store, FROZEN + timedelta(minutes=3))
        first = monitor.check_status("dev")
        second = monitor.check_status("dev")
        assert first is second is CredentialStatus.EXPIRING_SOON

    def test_expired_token_error_is_expired(self, sso_store) -> None:
        creds = FakeCredentials(error=UnauthorizedSSOTokenError())
        monitor = _monitor(sso_store, SessionFactory(dev=FakeSession(creds)))
        assert monitor.check_status("dev") is CredentialStatus.EXPIRED

    def test_other_error_is_missing(self, sso_store) -> None:
        creds = FakeCredentials(error=NoCredentialsError())
        monitor = _monitor(sso_store, SessionFactory(dev=FakeSession(creds)))
        assert monitor.check_status("dev") is CredentialStatus.MISSING

    def test_no_credentials_is_missing(self, sso_store) -> None:
        monitor = _monitor(sso_store, SessionFactory(dev=FakeSession(None)))
        assert monitor.check_status("dev") is CredentialStatus.MISSING

    def test_unknown_profile_is_missing(self, sso_store) -> None:
        monitor = _monitor(sso_store, SessionFactory())
        assert monitor.check_status("ghost") is CredentialStatus.MISSING

    def test_mfa_profile_is_not_retrieved(self, tmp_path: Path) -> None:
        store = make_store(tmp_path, "[profile alice]\nmfa_serial = arn:aws:iam::1:mfa/alice\n")
        factory = SessionFactory()
        assert _monitor(store, factory).check_status("alice") is CredentialStatus.MISSING
        assert factory.calls == []


class TestAutoRefresh:
    def test_sso_profile_logs_in_to_its_session(self, sso_store) -> None:
        login = FakeLogin()
        _monitor(sso_store, SessionFactory(), login).auto_refresh("dev")
        assert login.calls == ["companysso"]

    def test_iam_profile_cannot_refresh(self, sso_store) -> None:
        login = FakeLogin()
        with pytest.raises(RefreshUnsupported, match="aws-activate set prod-admin"):
            _monitor(sso_store, SessionFactory(), login).auto_refresh("prod-admin")
        assert login.calls == []

    def test_static_profile_cannot_refresh(self, tmp_path: Path) -> None:
        store = make_store(tmp_path, "", "[legacy]\naws_access_key_id = A\naws_secret_access_key = B\n")
        with pytest.raises(RefreshUnsupported, match="static"):
            _monitor(store, SessionFactory()).auto_refresh("legacy")

    def test_missing_sso_session_section(self, tmp_path: Path) -> None:
        store = make_store(tmp_path, "[profile dev]\nsso_session = gone\n")
        login = FakeLogin()
        with pytest.raises(ProfileNotFound, match="gone"):
            _monitor(store, SessionFactory(), login).auto_refresh("dev")
        assert login.calls == []


class TestEnsureFresh:
    def test_valid_credentials_do_not_refresh(self, sso_store) -> None:
        login = FakeLogin()
        monitor = _monitor(sso_store, SessionFactory(dev=FakeSession(FakeCredentials())), login)
        assert monitor.ensure_fresh("dev") is CredentialStatus.VALID
        assert login.calls == []

    def test_expired_credentials_trigger_login(self, sso_store) -> None:
        login = FakeLogin()
        creds = FakeCredentials(error=UnauthorizedSSOTokenError())
        monitor = _monitor(sso_store, SessionFactory(dev=FakeSession(creds)), login)
        assert monitor.ensure_fresh("dev") is CredentialStatus.EXPIRED
        assert login.calls == ["companysso"]

    def test_failed_refresh_is_only_a_warning(self, sso_store, caplog) -> None:
        login = FakeLogin(error=SsoLoginFailure("SSO login failed for session 'companysso'"))
        monitor = _monitor(sso_store, SessionFactory(dev=FakeSession(None)), login)

        with caplog.at_level(logging.WARNING, logger="aws_activate.monitor"):
            status = monitor.ensure_fresh("dev")

        assert status is CredentialStatus.MISSING
        assert "Auto-refresh failed" in caplog.text
