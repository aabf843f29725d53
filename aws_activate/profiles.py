"""Profile records and their classification."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class ProfileType(enum.Enum):
    STATIC = "static"
    IAM_ROLE = "iam-role"
    SSO = "sso"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Profile:
    name: str
    region: str = ""
    role_arn: str = ""
    source_profile: str = ""
    mfa_serial: str = ""
    sso_session: str = ""
    sso_account_id: str = ""
    sso_role_name: str = ""
    external_id: str = ""
    role_session_name: str = ""
    duration_seconds: int | None = None
    has_static_keys: bool = False

    @property
    def type(self) -> ProfileType:
        return classify(self)


@dataclass(frozen=True)
class SSOSession:
    name: str
    start_url: str = ""
    region: str = ""
    registration_scopes: list[str] = field(default_factory=list)


def classify(profile: Profile) -> ProfileType:
    """Return the type of a profile from the keys it declares.

    Order matters: a profile with a role_arn whose source_profile is SSO-backed
    is still an IAM role, the SSO part is resolved one level down the chain.
    """
    if profile.role_arn or profile.mfa_serial:
        return ProfileType.IAM_ROLE
    if profile.sso_session:
        return ProfileType.SSO
    if profile.has_static_keys:
        return ProfileType.STATIC
    return ProfileType.UNKNOWN
