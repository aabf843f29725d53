"""Resolved credential sets and their output formats."""

from __future__ import annotations

import json
import shlex
from dataclasses import dataclass
from datetime import datetime


def expiry_of(creds) -> datetime | None:
    """Return the expiry of a botocore credentials object, or None.

    Relies on the private `_expiry_time` of
    `botocore.credentials.RefreshableCredentials`; static credentials have none.
    """
    return getattr(creds, "_expiry_time", None)


@dataclass
class Credentials:
    access_key_id: str
    secret_access_key: str
    session_token: str  # empty string means no session token (static credentials)
    expires_at: datetime | None = None
    profile_name: str = ""

    @classmethod
    def from_sts(cls, creds: dict, profile_name: str) -> "Credentials":
        """Build from the `Credentials` block of an STS response."""
        return cls(
            access_key_id=creds["AccessKeyId"],
            secret_access_key=creds["SecretAccessKey"],
            session_token=creds.get("SessionToken") or "",
            expires_at=creds.get("Expiration"),
            profile_name=profile_name,
        )

    @property
    def expiration(self) -> str:
        return self.expires_at.isoformat() if self.expires_at else "unknown"

    def to_env_vars(self) -> dict[str, str]:
        env: dict[str, str] = {
            "AWS_ACCESS_KEY_ID": self.access_key_id,
            "AWS_SECRET_ACCESS_KEY": self.secret_access_key,
        }
        if self.session_token:
            env["AWS_SESSION_TOKEN"] = self.session_token
        return env

    def to_eval(self) -> str:
        """Return shell export statements for eval, safely quoted with shlex."""
        lines = [
            f"export AWS_ACCESS_KEY_ID={shlex.quote(self.access_key_id)}",
            f"export AWS_SECRET_ACCESS_KEY={shlex.quote(self.secret_access_key)}",
        ]
        if self.session_token:
            lines.append(f"export AWS_SESSION_TOKEN={shlex.quote(self.session_token)}")
        if self.profile_name:
            lines.append(f"export AWS_ACTIVATE_PROFILE={shlex.quote(self.profile_name)}")
        if self.expires_at:
            lines.append(f"export AWS_ACTIVATE_EXPIRATION={shlex.quote(self.expiration)}")
        return "\n".join(lines)

    def to_env_file(self) -> str:
        """Return Docker-style .env file content."""
        return "\n".join(f"{k}={v}" for k, v in self.to_env_vars().items())

    def to_json(self) -> str:
        data: dict[str, str] = {
            "AccessKeyId": self.access_key_id,
            "SecretAccessKey": self.secret_access_key,
            "Expiration": self.expiration,
        }
        if self.session_token:
            data["SessionToken"] = self.session_token
        return json.dumps(data, indent=2)
