"""Expiration checks and automatic refresh of profile credentials."""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from botocore.exceptions import BotoCoreError, ClientError

from aws_activate.config_store import ConfigStore
from aws_activate.credentials import expiry_of
from aws_activate.errors import (
    CredentialError,
    ProfileNotFound,
    RefreshUnsupported,
    is_expiry_error,
)
from aws_activate.login import AwsCliLoginService, LoginService
from aws_activate.profiles import ProfileType, classify

LOG = logging.getLogger(__name__)

EXPIRY_WINDOW = timedelta(minutes=5)


class CredentialStatus(enum.Enum):
    VALID = "valid"
    EXPIRING_SOON = "expiring soon"
    EXPIRED = "expired"
    MISSING = "missing"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExpirationMonitor:
    """Classifies the current credentials of a profile and refreshes them.

    Credentials are retrieved through the standard boto3 chain for the profile
    and judged by their expiry time. Only SSO profiles can be refreshed, by
    running an interactive login through the `LoginService`.
    """

    def __init__(
        self,
        store: ConfigStore,
        login_service: LoginService | None = None,
        session_factory: Callable | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._login_service = login_service or AwsCliLoginService()
        self._session_factory = session_factory or store.boto3_session
        self._clock = clock

    def check_status(self, profile_name: str) -> CredentialStatus:
        try:
            profile = self._store.get_profile(profile_name)
        except ProfileNotFound:
            return CredentialStatus.MISSING

        if profile.mfa_serial:
            # Retrieving would require an MFA token code from the user.
            LOG.debug("not checking %s: credentials require an MFA token", profile_name)
            return CredentialStatus.MISSING

        try:
            creds = self._session_factory(profile_name).get_credentials()
            if creds is None:
                return CredentialStatus.MISSING
            creds.get_frozen_credentials()
        except (BotoCoreError, ClientError) as e:
            if is_expiry_error(e):
                return CredentialStatus.EXPIRED
            LOG.debug("no usable credentials for %s: %s", profile_name, e)
            return CredentialStatus.MISSING

        return self.status_for_expiry(expiry_of(creds))

    def status_for_expiry(self, expires_at: datetime | None) -> CredentialStatus:
        if expires_at is None:
            return CredentialStatus.VALID
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)

        now = self._clock()
        if now >= expires_at:
            return CredentialStatus.EXPIRED
        if expires_at - now <= EXPIRY_WINDOW:
            return CredentialStatus.EXPIRING_SOON
        return CredentialStatus.VALID

    def auto_refresh(self, profile_name: str) -> None:
        profile = self._store.get_profile(profile_name)
        profile_type = classify(profile)

        if profile_type is ProfileType.SSO:
            session = self._store.get_sso_session(profile.sso_session)
            LOG.info("refreshing SSO session %s for profile %s", session.name, profile_name)
            self._login_service.login(session.name)
            return
        if profile_type is ProfileType.IAM_ROLE:
            raise RefreshUnsupported(
                f"IAM profile '{profile_name}' needs an MFA token or role assumption and "
                f"cannot be refreshed automatically. Please run: aws-activate set {profile_name}"
            )
        raise RefreshUnsupported(
            f"Cannot auto-refresh credentials of {profile_type.value} profile '{profile_name}'"
        )

    def ensure_fresh(self, profile_name: str) -> CredentialStatus:
        """Refresh the profile unless its credentials are valid.

        Best effort: a failed refresh is logged and the status found before the
        attempt is returned, the caller's own resolution decides the outcome.
        """
        status = self.check_status(profile_name)
        if status is CredentialStatus.VALID:
            return status

        if status is CredentialStatus.EXPIRING_SOON:
            LOG.warning("credentials for %s expiring soon, refreshing", profile_name)
        else:
            LOG.info("credentials for %s are %s, refreshing", profile_name, status.value)

        try:
            self.auto_refresh(profile_name)
        except CredentialError as e:
            LOG.warning("Auto-refresh failed: %s", e)
        return status
