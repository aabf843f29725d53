"""Errors raised while resolving, refreshing and activating credentials.

Every failure the engine reports is a `CredentialError` subclass. Each subclass
maps to exactly one `ErrorKind`, so callers can either catch the class they
care about or switch on `err.kind`. `exit_code` is what the command line exits
with: 10 tells a shell wrapper the SSO session expired and a login is needed,
everything else is 1.
"""

from __future__ import annotations

import enum

from botocore.exceptions import ClientError
from botocore.exceptions import ConnectionError as BotoConnectionError
from botocore.exceptions import (
    HTTPClientError,
    SSOTokenLoadError,
    TokenRetrievalError,
    UnauthorizedSSOTokenError,
)


class ErrorKind(enum.Enum):
    PROFILE_NOT_FOUND = "profile-not-found"
    PROFILE_TYPE_UNKNOWN = "profile-type-unknown"
    SSO_SESSION_EXPIRED = "sso-session-expired"
    ROLE_CHAIN_CYCLE = "role-chain-cycle"
    MFA_INPUT_FAILURE = "mfa-input-failure"
    ROLE_ASSUMPTION_FAILURE = "role-assumption-failure"
    UPSTREAM_SESSION_INVALID = "upstream-session-invalid"
    TLS_OR_NETWORK_FAILURE = "tls-or-network-failure"
    FILE_IO_FAILURE = "file-io-failure"
    SSO_LOGIN_FAILURE = "sso-login-failure"
    REFRESH_UNSUPPORTED = "refresh-unsupported"
    STATIC_KEYS_MISSING = "static-keys-missing"


EXIT_FAILURE = 1
EXIT_SSO_EXPIRED = 10


class CredentialError(RuntimeError):
    kind: ErrorKind
    exit_code = EXIT_FAILURE


class ProfileNotFound(CredentialError):
    kind = ErrorKind.PROFILE_NOT_FOUND


class ProfileTypeUnknown(CredentialError):
    kind = ErrorKind.PROFILE_TYPE_UNKNOWN


class SsoSessionExpired(CredentialError):
    """The cached SSO token for a profile is missing, expired or rejected.

    This is the only error a caller may remediate automatically, by running
    an interactive login for `session_name` and resolving again.
    """

    kind = ErrorKind.SSO_SESSION_EXPIRED
    exit_code = EXIT_SSO_EXPIRED

    def __init__(self, profile_name: str, session_name: str = "") -> None:
        self.profile_name = profile_name
        self.session_name = session_name
        super().__init__(f"SSO session for profile '{profile_name}' is expired or invalid")


class RoleChainCycle(CredentialError):
    kind = ErrorKind.ROLE_CHAIN_CYCLE

    def __init__(self, chain: list[str]) -> None:
        self.chain = list(chain)
        super().__init__(f"source_profile cycle detected: {' -> '.join(self.chain)}")


class MfaInputFailure(CredentialError):
    kind = ErrorKind.MFA_INPUT_FAILURE


class RoleAssumptionFailure(CredentialError):
    kind = ErrorKind.ROLE_ASSUMPTION_FAILURE


class UpstreamSessionInvalid(CredentialError):
    kind = ErrorKind.UPSTREAM_SESSION_INVALID

    def __init__(self, profile_name: str, session_name: str) -> None:
        self.profile_name = profile_name
        self.session_name = session_name
        super().__init__(
            f"SSO session for source profile '{profile_name}' has expired or is invalid. "
            f"Please run: aws sso login --sso-session {session_name}"
        )


class TLSOrNetworkFailure(CredentialError):
    kind = ErrorKind.TLS_OR_NETWORK_FAILURE


class FileIOFailure(CredentialError):
    kind = ErrorKind.FILE_IO_FAILURE


class SsoLoginFailure(CredentialError):
    kind = ErrorKind.SSO_LOGIN_FAILURE


class RefreshUnsupported(CredentialError):
    kind = ErrorKind.REFRESH_UNSUPPORTED


class StaticKeysMissing(CredentialError):
    kind = ErrorKind.STATIC_KEYS_MISSING


_EXPIRED_CODES = frozenset(
    (
        "UnauthorizedException",
        "ExpiredToken",
        "ExpiredTokenException",
        "InvalidGrantException",
    )
)


def is_expiry_error(e: Exception) -> bool:
    """Check if a botocore exception means a token or session has expired."""
    if isinstance(e, (TokenRetrievalError, UnauthorizedSSOTokenError, SSOTokenLoadError)):
        return True
    if isinstance(e, ClientError):
        code = e.response.get("Error", {}).get("Code", "")
        return code in _EXPIRED_CODES
    msg = str(e).lower()
    return "token has expired" in msg or "invalidgrantexception" in msg


def is_network_error(e: Exception) -> bool:
    """Check if a botocore exception is a TLS or connectivity failure."""
    if isinstance(e, (BotoConnectionError, HTTPClientError)):
        return True
    msg = str(e)
    return "certificate" in msg or "SSL" in msg
