"""Core logic for resolving AWS profiles into credentials.

Supports:
  - static profiles (access keys in the config or credentials file)
  - SSO profiles (sso_session, token cached by `aws sso login`)
  - role assumption (role_arn, optionally with source_profile and mfa_serial)
  - MFA session tokens (mfa_serial without role_arn)
  - role chains whose source is SSO-backed
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable

import click
from botocore.exceptions import BotoCoreError, ClientError
from botocore.exceptions import ProfileNotFound as BotoProfileNotFound

from aws_activate.config_store import ConfigStore
from aws_activate.credentials import Credentials, expiry_of
from aws_activate.errors import (
    MfaInputFailure,
    ProfileNotFound,
    ProfileTypeUnknown,
    RoleAssumptionFailure,
    RoleChainCycle,
    SsoSessionExpired,
    TLSOrNetworkFailure,
    UpstreamSessionInvalid,
    is_expiry_error,
    is_network_error,
)
from aws_activate.monitor import ExpirationMonitor
from aws_activate.profiles import Profile, ProfileType, classify

LOG = logging.getLogger(__name__)

DEFAULT_DURATION_SECONDS = 3600


@dataclass
class Resolution:
    """Outcome of resolving a profile.

    Static profiles resolve to `is_static=True` and no credentials: the caller
    copies the existing keys itself, so no network access is needed.
    """

    credentials: Credentials | None
    is_static: bool


def prompt_mfa_token(mfa_serial: str) -> str:
    """Ask for an MFA token code on stderr."""
    try:
        code = click.prompt(f"Enter MFA token for {mfa_serial}", err=True)
    except click.Abort as e:
        raise MfaInputFailure(f"Failed to read MFA token for {mfa_serial}") from e
    code = str(code).strip()
    if not code:
        raise MfaInputFailure(f"Empty MFA token for {mfa_serial}")
    return code


class CredentialResolver:
    def __init__(
        self,
        store: ConfigStore,
        monitor: ExpirationMonitor | None = None,
        prompt_mfa: Callable[[str], str] = prompt_mfa_token,
        session_factory: Callable | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._monitor = monitor
        self._prompt_mfa = prompt_mfa
        self._session_factory = session_factory or store.boto3_session
        self._clock = clock

    def resolve(self, profile_name: str) -> Resolution:
        """Resolve a profile into credentials.

        Expired SSO tokens raise `SsoSessionExpired`, no login is attempted:
        the caller decides whether to run one.
        """
        chain = self.walk_chain(profile_name)
        profile, profile_type = chain[0]

        if profile_type is ProfileType.STATIC:
            return Resolution(credentials=None, is_static=True)
        if profile_type is ProfileType.SSO:
            return Resolution(credentials=self._resolve_sso(profile), is_static=False)

        if profile.role_arn:
            if len(chain) > 1:
                self._ensure_upstream(*chain[-1])
            creds = self._assume_role(profile)
        else:
            creds = self._get_session_token(profile)
        return Resolution(credentials=creds, is_static=False)

    def walk_chain(self, profile_name: str) -> list[tuple[Profile, ProfileType]]:
        """Follow source_profile links from `profile_name` to the base profile.

        Each profile is loaded and classified once. Returns the chain starting
        with the requested profile and ending with the profile whose
        credentials the chain is built on.
        """
        chain: list[tuple[Profile, ProfileType]] = []
        visited: list[str] = []
        name = profile_name

        while True:
            if name in visited:
                raise RoleChainCycle(visited + [name])
            visited.append(name)

            profile = self._store.get_profile(name)
            profile_type = classify(profile)
            chain.append((profile, profile_type))

            if profile_type is ProfileType.IAM_ROLE and profile.role_arn and profile.source_profile:
                name = profile.source_profile
                continue
            if profile_type is ProfileType.UNKNOWN:
                raise ProfileTypeUnknown(f"Could not determine type of profile '{name}'")
            return chain

    def _ensure_upstream(self, profile: Profile, profile_type: ProfileType) -> None:
        """Make sure the SSO session a role chain is built on is usable."""
        if profile_type is not ProfileType.SSO:
            return

        if self._monitor is not None:
            self._monitor.ensure_fresh(profile.name)

        try:
            self._resolve_sso(profile)
        except SsoSessionExpired as e:
            raise UpstreamSessionInvalid(profile.name, profile.sso_session) from e
        except TLSOrNetworkFailure as e:
            raise TLSOrNetworkFailure(
                f"SSL certificate or network issue with SSO session for source profile "
                f"'{profile.name}'. Please check your network configuration or run: "
                f"aws sso login --sso-session {profile.sso_session}"
            ) from e

    def _resolve_sso(self, profile: Profile) -> Credentials:
        try:
            creds = self._session_factory(profile.name).get_credentials()
            if creds is None:
                raise SsoSessionExpired(profile.name, profile.sso_session)
            frozen = creds.get_frozen_credentials()
        except BotoProfileNotFound as e:
            raise ProfileNotFound(f"Profile '{profile.name}' not found") from e
        except (BotoCoreError, ClientError) as e:
            if is_expiry_error(e):
                raise SsoSessionExpired(profile.name, profile.sso_session) from e
            if is_network_error(e):
                raise TLSOrNetworkFailure(
                    f"Network or TLS failure retrieving SSO credentials for "
                    f"profile '{profile.name}': {e}"
                ) from e
            raise RoleAssumptionFailure(
                f"Failed to resolve SSO credentials for profile '{profile.name}': {_describe(e)}"
            ) from e

        return Credentials(
            access_key_id=frozen.access_key,
            secret_access_key=frozen.secret_key,
            session_token=frozen.token or "",
            expires_at=expiry_of(creds),
            profile_name=profile.name,
        )

    def _sts_client(self, profile_name: str):
        try:
            return self._session_factory(profile_name).client("sts")
        except BotoProfileNotFound as e:
            raise ProfileNotFound(f"Profile '{profile_name}' not found") from e
        except BotoCoreError as e:
            raise RoleAssumptionFailure(
                f"Failed to load AWS config for profile '{profile_name}': {e}"
            ) from e

    def _role_session_name(self, profile: Profile) -> str:
        if profile.role_session_name:
            return profile.role_session_name
        # STS constraint: [\w+=,.@-]{2,64}
        safe_name = re.sub(r"[^\w+=,.@-]", "-", profile.name)[:40]
        return f"aws-activate-{safe_name}-{int(self._clock())}"

    def _assume_role(self, profile: Profile) -> Credentials:
        LOG.info("Assuming role %s", profile.role_arn)

        # source_profile, when set, is always the identity calling STS.
        sts = self._sts_client(profile.source_profile or profile.name)

        assume_kwargs: dict[str, object] = {
            "RoleArn": profile.role_arn,
            "RoleSessionName": self._role_session_name(profile),
            "DurationSeconds": profile.duration_seconds or DEFAULT_DURATION_SECONDS,
        }
        if profile.external_id:
            assume_kwargs["ExternalId"] = profile.external_id
        if profile.mfa_serial:
            assume_kwargs["SerialNumber"] = profile.mfa_serial
            assume_kwargs["TokenCode"] = self._prompt_mfa(profile.mfa_serial)

        try:
            response = sts.assume_role(**assume_kwargs)
        except (BotoCoreError, ClientError) as e:
            raise _sts_failure(e, f"Failed to assume role '{profile.role_arn}'") from e

        return Credentials.from_sts(response["Credentials"], profile.name)

    def _get_session_token(self, profile: Profile) -> Credentials:
        LOG.info("Getting session token for profile %s", profile.name)

        sts = self._sts_client(profile.name)
        token_code = self._prompt_mfa(profile.mfa_serial)

        try:
            response = sts.get_session_token(
                DurationSeconds=DEFAULT_DURATION_SECONDS,
                SerialNumber=profile.mfa_serial,
                TokenCode=token_code,
            )
        except (BotoCoreError, ClientError) as e:
            raise _sts_failure(
                e, f"Failed to get session token for profile '{profile.name}'"
            ) from e

        return Credentials.from_sts(response["Credentials"], profile.name)


def _describe(e: Exception) -> str:
    if isinstance(e, ClientError):
        error = e.response.get("Error", {})
        code = error.get("Code", "Unknown")
        message = error.get("Message", "")
        return f"{code}: {message}" if message else code
    return str(e)


def _sts_failure(e: Exception, context: str) -> Exception:
    if is_network_error(e):
        return TLSOrNetworkFailure(f"{context}: {e}")
    return RoleAssumptionFailure(f"{context}: {_describe(e)}")
