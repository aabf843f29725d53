"""Tests for aws_activate.profiles"""

from __future__ import annotations

import pytest

from aws_activate.profiles import Profile, ProfileType, classify


@pytest.mark.parametrize(
    "profile, expected",
    [
        (Profile("r", role_arn="arn:aws:iam::1:role/R"), ProfileType.IAM_ROLE),
        (Profile("m", mfa_serial="arn:aws:iam::1:mfa/m"), ProfileType.IAM_ROLE),
        (Profile("s", sso_session="corp"), ProfileType.SSO),
        (Profile("k", has_static_keys=True), ProfileType.STATIC),
        (Profile("empty", region="us-east-1"), ProfileType.UNKNOWN),
        # role_arn wins over an SSO session or static keys on the same profile
        (
            Profile("both", role_arn="arn:aws:iam::1:role/R", sso_session="corp", has_static_keys=True),
            ProfileType.IAM_ROLE,
        ),
        (Profile("sso-keys", sso_session="corp", has_static_keys=True), ProfileType.SSO),
    ],
)
def test_classify(profile: Profile, expected: ProfileType) -> None:
    assert classify(profile) is expected
    assert profile.type is expected
