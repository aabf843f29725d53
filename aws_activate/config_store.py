"""Read and write access to the shared AWS config and credentials files."""

from __future__ import annotations

import configparser
import io
import logging
import os
import re
import stat
import tempfile
from pathlib import Path
from typing import Callable

import boto3
import botocore.session

from aws_activate.errors import FileIOFailure, ProfileNotFound
from aws_activate.profiles import Profile, SSOSession

LOG = logging.getLogger(__name__)

PROFILE_PREFIX = "profile "
SSO_SESSION_PREFIX = "sso-session "


def _get_aws_config_path() -> Path:
    return Path(os.environ.get("AWS_CONFIG_FILE", "~/.aws/config")).expanduser()


def _get_aws_credentials_path() -> Path:
    return Path(os.environ.get("AWS_SHARED_CREDENTIALS_FILE", "~/.aws/credentials")).expanduser()


SOURCE_PROFILE_KEY = "# source_profile"

MARKER_RE = re.compile(r"^#\s*source_profile\s*=(.*)$")
_COMMENT_KEY = ";comment-{}"
_COMMENT_KEY_RE = re.compile(r"^;comment-(\d+)$")


class CredentialsParser(configparser.RawConfigParser):
    """A RawConfigParser for the credentials file that keeps its comments.

    Comment lines inside a section are held as placeholder keys and written
    back in place, comment lines before the first section are kept as a
    preamble. A `# source_profile = NAME` line is read as the ordinary key
    `SOURCE_PROFILE_KEY`, which other AWS tools see as a comment.
    """

    def __init__(self) -> None:
        super().__init__(
            delimiters=("=",),
            comment_prefixes=(),
            inline_comment_prefixes=None,
            allow_no_value=True,
            strict=False,
        )
        self._comments: list[str] = []
        self._preamble: list[str] = []

    def read_text(self, text: str, source: str = "<credentials>") -> None:
        lines = []
        in_section = False
        for raw in text.splitlines():
            line = raw.strip()
            if line.startswith("["):
                in_section = True
            elif line.startswith(("#", ";")):
                marker = MARKER_RE.match(line)
                if marker and in_section:
                    lines.append(f"{SOURCE_PROFILE_KEY} = {marker.group(1).strip()}")
                elif in_section:
                    lines.append(_COMMENT_KEY.format(len(self._comments)))
                    self._comments.append(raw.rstrip())
                else:
                    self._preamble.append(raw.rstrip())
                continue
            elif not in_section and not line:
                self._preamble.append("")
                continue
            lines.append(raw)
        self.read_string("\n".join(lines) + "\n", source)

    def write(self, fp, space_around_delimiters=True) -> None:
        buf = io.StringIO()
        super().write(buf, space_around_delimiters)
        if any(self._preamble):
            fp.write("\n".join(self._preamble).strip("\n") + "\n\n")
        for line in buf.getvalue().splitlines(keepends=True):
            comment = _COMMENT_KEY_RE.match(line.rstrip("\n"))
            fp.write(self._comments[int(comment.group(1))] + "\n" if comment else line)


def _atomic_write(path: Path, config: configparser.RawConfigParser) -> None:
    """Write to a temp file with 0600 permissions, then replace the target."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".aws-activate-")
    except OSError as e:
        raise FileIOFailure(f"Cannot write {path}: {e.strerror or e}") from e

    tmp_path = Path(tmp_name)
    try:
        os.fchmod(tmp_fd, stat.S_IRUSR | stat.S_IWUSR)
        with os.fdopen(tmp_fd, "w") as f:
            config.write(f)
        os.replace(tmp_name, path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise FileIOFailure(f"Cannot write {path}: {e.strerror or e}") from e


class ConfigStore:
    """The two flat section files the AWS tooling shares.

    The config file holds `[profile NAME]` and `[sso-session NAME]` sections,
    the credentials file holds sections named directly after profiles plus
    the `[default]` section used as the active session. Paths default to
    `AWS_CONFIG_FILE` and `AWS_SHARED_CREDENTIALS_FILE`.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        credentials_path: Path | None = None,
    ) -> None:
        self.config_path = Path(config_path) if config_path else _get_aws_config_path()
        self.credentials_path = (
            Path(credentials_path) if credentials_path else _get_aws_credentials_path()
        )
        self._listeners: list[Callable[[], None]] = []

    def add_change_listener(self, listener: Callable[[], None]) -> None:
        """Register a callable invoked after every write to the config file."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            listener()

    # -- config file --------------------------------------------------------

    def read_config(self) -> configparser.RawConfigParser:
        config = configparser.RawConfigParser()
        if not self.config_path.exists():
            return config
        try:
            with open(self.config_path) as f:
                config.read_file(f)
        except (OSError, configparser.Error) as e:
            raise FileIOFailure(f"Failed to read AWS config file {self.config_path}: {e}") from e
        return config

    def list_profiles(self) -> list[str]:
        """Return all profile names from the config file."""
        config = self.read_config()

        profiles = set()
        for section in config.sections():
            if section.startswith(SSO_SESSION_PREFIX):
                continue
            if section.startswith(PROFILE_PREFIX):
                profiles.add(section[len(PROFILE_PREFIX) :])
            else:
                profiles.add(section)
        return sorted(profiles)

    def list_sso_sessions(self) -> list[str]:
        config = self.read_config()
        return sorted(
            section[len(SSO_SESSION_PREFIX) :]
            for section in config.sections()
            if section.startswith(SSO_SESSION_PREFIX)
        )

    def _profile_section(
        self, config: configparser.RawConfigParser, profile_name: str
    ) -> dict[str, str] | None:
        for section in (PROFILE_PREFIX + profile_name, profile_name):
            if section in config:
                return dict(config[section])
        return None

    def get_profile(self, profile_name: str) -> Profile:
        """Load a profile record from the config file, falling back to the
        credentials file for profiles that only exist there."""
        section = self._profile_section(self.read_config(), profile_name)
        try:
            static = self.get_static_keys(profile_name)
        except FileIOFailure as e:
            # A damaged credentials file must not hide config-only profiles.
            LOG.warning("%s", e)
            static = {}
        has_static_keys = bool(
            static.get("aws_access_key_id") and static.get("aws_secret_access_key")
        )

        if section is None:
            if has_static_keys:
                return Profile(name=profile_name, has_static_keys=True)
            raise ProfileNotFound(f"Profile '{profile_name}' not found in {self.config_path}")

        duration = None
        if section.get("duration_seconds"):
            try:
                duration = int(section["duration_seconds"])
            except ValueError:
                LOG.warning(
                    "ignoring invalid duration_seconds %r for profile %s",
                    section["duration_seconds"],
                    profile_name,
                )

        return Profile(
            name=profile_name,
            region=section.get("region", ""),
            role_arn=section.get("role_arn", ""),
            source_profile=section.get("source_profile", ""),
            mfa_serial=section.get("mfa_serial", ""),
            sso_session=section.get("sso_session", ""),
            sso_account_id=section.get("sso_account_id", ""),
            sso_role_name=section.get("sso_role_name", ""),
            external_id=section.get("external_id", ""),
            role_session_name=section.get("role_session_name", ""),
            duration_seconds=duration,
            has_static_keys="aws_access_key_id" in section or has_static_keys,
        )

    def get_sso_session(self, session_name: str) -> SSOSession:
        config = self.read_config()
        section = SSO_SESSION_PREFIX + session_name
        if section not in config:
            raise ProfileNotFound(f"SSO session '{session_name}' not found in {self.config_path}")

        values = config[section]
        scopes = values.get("sso_registration_scopes", "")
        return SSOSession(
            name=session_name,
            start_url=values.get("sso_start_url", ""),
            region=values.get("sso_region", ""),
            registration_scopes=[s.strip() for s in scopes.split(",") if s.strip()],
        )

    def set_profile_region(self, profile_name: str, region: str) -> None:
        config = self.read_config()
        for section in (PROFILE_PREFIX + profile_name, profile_name):
            if section in config:
                config[section]["region"] = region
                break
        else:
            raise ProfileNotFound(f"Profile '{profile_name}' not found in {self.config_path}")

        _atomic_write(self.config_path, config)
        self._notify()

    # -- credentials file ---------------------------------------------------

    def read_credentials(self) -> CredentialsParser:
        config = CredentialsParser()
        if not self.credentials_path.exists():
            return config
        try:
            with open(self.credentials_path) as f:
                config.read_text(f.read(), str(self.credentials_path))
        except (OSError, configparser.Error) as e:
            raise FileIOFailure(
                f"Failed to read AWS credentials file {self.credentials_path}: {e}"
            ) from e
        return config

    def write_credentials(self, config: CredentialsParser) -> Path:
        _atomic_write(self.credentials_path, config)
        return self.credentials_path

    def get_static_keys(self, profile_name: str) -> dict[str, str]:
        """Return the credentials-file section of a profile, or an empty dict."""
        config = self.read_credentials()
        if profile_name not in config:
            return {}
        return {k: v for k, v in config[profile_name].items() if v is not None}

    # -- boto3 --------------------------------------------------------------

    def boto3_session(self, profile_name: str | None = None) -> boto3.Session:
        """Return a boto3 session that reads this store's files."""
        core = botocore.session.Session()
        core.set_config_variable("config_file", str(self.config_path))
        core.set_config_variable("credentials_file", str(self.credentials_path))
        return boto3.Session(botocore_session=core, profile_name=profile_name)
