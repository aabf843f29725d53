"""The active session: the `[default]` section of the credentials file.

Downstream tools read `[default]` as "the current AWS session". Writing it is
an overwrite of the credential keys, never a merge, and records the profile
that produced it under a `# source_profile` key so it can be read back later.
"""

from __future__ import annotations

import logging
from pathlib import Path

from aws_activate.config_store import MARKER_RE, SOURCE_PROFILE_KEY, ConfigStore
from aws_activate.credentials import Credentials
from aws_activate.errors import FileIOFailure, ProfileNotFound, StaticKeysMissing

LOG = logging.getLogger(__name__)

ACTIVE_SECTION = "default"
ACTIVE_KEYS = (
    "aws_access_key_id",
    "aws_secret_access_key",
    "aws_session_token",
    "region",
    SOURCE_PROFILE_KEY,
)


class ActiveSessionWriter:
    def __init__(self, store: ConfigStore) -> None:
        self._store = store

    def write_active(self, creds: Credentials, region: str, source_profile: str) -> Path:
        """Make temporary credentials the active session."""
        config = self._store.read_credentials()
        if ACTIVE_SECTION not in config:
            config.add_section(ACTIVE_SECTION)
        section = config[ACTIVE_SECTION]

        section["aws_access_key_id"] = creds.access_key_id
        section["aws_secret_access_key"] = creds.secret_access_key
        if creds.session_token:
            section["aws_session_token"] = creds.session_token
        else:
            section.pop("aws_session_token", None)
        if region:
            section["region"] = region
        section[SOURCE_PROFILE_KEY] = source_profile

        LOG.info("writing active session from profile %s", source_profile)
        return self._store.write_credentials(config)

    def write_active_static(self, source_profile: str) -> Path:
        """Copy a static profile's keys into the active session.

        The region comes from the profile's config section, then its
        credentials section; without either the current region is kept.
        """
        try:
            region = self._store.get_profile(source_profile).region
        except ProfileNotFound:
            region = ""

        config = self._store.read_credentials()
        if source_profile not in config:
            raise StaticKeysMissing(f"Could not find credentials for profile '{source_profile}'")
        source = config[source_profile]

        access_key = source.get("aws_access_key_id") or ""
        secret_key = source.get("aws_secret_access_key") or ""
        if not access_key or not secret_key:
            raise StaticKeysMissing(f"Profile '{source_profile}' does not have static credentials")
        session_token = source.get("aws_session_token") or ""
        region = region or source.get("region") or ""

        creds = Credentials(
            access_key_id=access_key,
            secret_access_key=secret_key,
            session_token=session_token,
            profile_name=source_profile,
        )
        return self.write_active(creds, region, source_profile)

    def get_active_profile_name(self) -> str:
        """Return the profile the active session came from, or ""."""
        try:
            config = self._store.read_credentials()
        except FileIOFailure as e:
            LOG.debug("structured read failed, scanning lines: %s", e)
            return self._scan_active_profile_name()

        if ACTIVE_SECTION not in config:
            return ""
        return config[ACTIVE_SECTION].get(SOURCE_PROFILE_KEY) or ""

    def _scan_active_profile_name(self) -> str:
        try:
            lines = self._store.credentials_path.read_text(errors="replace").splitlines()
        except OSError:
            return ""

        in_active = False
        for raw in lines:
            line = raw.strip()
            if line.startswith("["):
                in_active = line == f"[{ACTIVE_SECTION}]"
                continue
            marker = MARKER_RE.match(line) if in_active else None
            if marker:
                return marker.group(1).strip()
        return ""

    def clear_active(self) -> None:
        """Remove the active session keys. Nothing to do if there is none."""
        if not self._store.credentials_path.exists():
            return
        config = self._store.read_credentials()
        if ACTIVE_SECTION not in config:
            return

        section = config[ACTIVE_SECTION]
        for key in ACTIVE_KEYS:
            section.pop(key, None)
        self._store.write_credentials(config)

    def set_active_region(self, region: str) -> Path:
        config = self._store.read_credentials()
        if ACTIVE_SECTION not in config:
            config.add_section(ACTIVE_SECTION)
        config[ACTIVE_SECTION]["region"] = region
        return self._store.write_credentials(config)
