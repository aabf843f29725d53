"""Interactive SSO login through the AWS CLI."""

from __future__ import annotations

import logging
import subprocess
import sys

from aws_activate.errors import SsoLoginFailure

LOG = logging.getLogger(__name__)


class LoginService:
    """Performs an interactive IAM Identity Center login for an SSO session.

    Subclasses must implement `login`, which blocks until the login finishes
    and raises `SsoLoginFailure` when it does not succeed.
    """

    def login(self, session_name: str) -> None:
        raise NotImplementedError


class AwsCliLoginService(LoginService):
    """Runs `aws sso login --sso-session NAME` with the caller's terminal.

    The child's stdout is sent to our stderr so that nothing it prints can end
    up in output a shell is about to eval.
    """

    def __init__(self, aws_command: str = "aws") -> None:
        self._aws_command = aws_command

    def login(self, session_name: str) -> None:
        sys.stderr.write(f"Logging in to SSO session '{session_name}'...\n")
        LOG.info("running %s sso login --sso-session %s", self._aws_command, session_name)
        try:
            result = subprocess.run(
                [self._aws_command, "sso", "login", "--sso-session", session_name],
                stdin=sys.stdin,
                stdout=sys.stderr,
                stderr=sys.stderr,
                check=False,
            )
        except OSError as e:
            raise SsoLoginFailure(
                f"Could not run '{self._aws_command}' for SSO login: {e.strerror or e}"
            ) from e
        if result.returncode != 0:
            raise SsoLoginFailure(f"SSO login failed for session '{session_name}'")
