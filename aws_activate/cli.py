"""CLI entry point for aws-activate."""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

import click

from aws_activate import __version__
from aws_activate.active import ActiveSessionWriter
from aws_activate.cache import ProfileCache, fuzzy_match
from aws_activate.config_store import ConfigStore
from aws_activate.credentials import Credentials
from aws_activate.errors import CredentialError, SsoSessionExpired, StaticKeysMissing
from aws_activate.login import AwsCliLoginService, LoginService
from aws_activate.monitor import CredentialStatus, ExpirationMonitor
from aws_activate.resolver import CredentialResolver, Resolution

EXCLUDED_PREFIXES = ("sso-session",)


@dataclass
class Engine:
    store: ConfigStore
    cache: ProfileCache
    login: LoginService
    monitor: ExpirationMonitor
    resolver: CredentialResolver
    writer: ActiveSessionWriter


def build_engine(store: ConfigStore | None = None, login: LoginService | None = None) -> Engine:
    store = store or ConfigStore()
    login = login or AwsCliLoginService()
    cache = ProfileCache(store.list_profiles)
    store.add_change_listener(cache.invalidate)
    monitor = ExpirationMonitor(store, login_service=login)
    return Engine(
        store=store,
        cache=cache,
        login=login,
        monitor=monitor,
        resolver=CredentialResolver(store, monitor=monitor),
        writer=ActiveSessionWriter(store),
    )


def _print_error(msg: str) -> None:
    click.echo(click.style(f"Error: {msg}", fg="red"), err=True)


def _print_success(msg: str) -> None:
    click.echo(click.style(msg, fg="green"), err=True)


def _print_info(msg: str) -> None:
    click.echo(click.style(msg, fg="cyan"), err=True)


def _fail(e: CredentialError) -> None:
    # Only stderr: stdout may be eval'd by a shell wrapper.
    _print_error(str(e))
    sys.exit(e.exit_code)


def _complete_profiles(ctx, param, incomplete):
    try:
        names = ConfigStore().list_profiles()
        return [
            name
            for name in names
            if not name.startswith(EXCLUDED_PREFIXES) and fuzzy_match(name, incomplete)
        ]
    except CredentialError:
        return []


def _resolve(engine: Engine, profile: str, auto_login: bool) -> Resolution:
    try:
        return engine.resolver.resolve(profile)
    except SsoSessionExpired as e:
        if not auto_login or not e.session_name:
            raise
        _print_info(f"SSO session expired. Attempting login for session: {e.session_name}")
        _print_info("Your browser should open. Please follow the instructions.")
        engine.login.login(e.session_name)
        _print_success("SSO login successful.")
        return engine.resolver.resolve(profile)


def _static_credentials(engine: Engine, profile: str) -> Credentials:
    keys = engine.store.get_static_keys(profile)
    if not keys.get("aws_access_key_id") or not keys.get("aws_secret_access_key"):
        raise StaticKeysMissing(f"Profile '{profile}' does not have static credentials")
    return Credentials(
        access_key_id=keys["aws_access_key_id"],
        secret_access_key=keys["aws_secret_access_key"],
        session_token=keys.get("aws_session_token", ""),
        profile_name=profile,
    )


def _target_profile(engine: Engine, profile: str | None) -> str:
    name = profile or engine.writer.get_active_profile_name() or os.environ.get("AWS_PROFILE", "")
    if not name:
        _print_error("No profile specified and no active profile found")
        sys.exit(1)
    return name


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, prog_name="aws-activate")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Set the logging level.",
)
@click.pass_context
def cli(ctx, log_level):
    """Switch between AWS profiles and keep their credentials fresh.

    \b
    Examples:
      aws-activate set my-profile
      eval $(aws-activate export my-profile)
      aws-activate current
      aws-activate refresh
    """
    logging.basicConfig(
        level=log_level.upper(),
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = build_engine()


@cli.command("set")
@click.argument("profile", shell_complete=_complete_profiles)
@click.option(
    "--no-auto-login",
    "no_auto_login",
    is_flag=True,
    default=False,
    help="Do not automatically trigger SSO login if session is expired.",
)
@click.pass_obj
def set_profile(engine: Engine, profile, no_auto_login):
    """Make PROFILE the active session in the default credentials."""
    try:
        resolution = _resolve(engine, profile, auto_login=not no_auto_login)
        if resolution.is_static:
            engine.writer.write_active_static(profile)
            _print_success(f"Switched to profile '{profile}' in default credentials.")
            return

        region = engine.store.get_profile(profile).region or os.environ.get("AWS_REGION", "")
        engine.writer.write_active(resolution.credentials, region, profile)
    except CredentialError as e:
        _fail(e)

    _print_success(f"Credentials for profile '{profile}' are set.")
    if resolution.credentials.expires_at:
        _print_info(f"Expires: {resolution.credentials.expiration}")


@cli.command("export")
@click.argument("profile", shell_complete=_complete_profiles)
@click.option(
    "--json", "output_json", is_flag=True, default=False, help="Output credentials as JSON."
)
@click.option(
    "--env-file",
    "env_file",
    metavar="PATH",
    default=None,
    help="Write credentials to a Docker-style .env file.",
)
@click.pass_obj
def export(engine: Engine, profile, output_json, env_file):
    """Print shell export statements for PROFILE.

    Exits with status 10 when the SSO session has expired.
    """
    try:
        resolution = engine.resolver.resolve(profile)
        if resolution.is_static:
            creds = _static_credentials(engine, profile)
        else:
            creds = resolution.credentials
    except CredentialError as e:
        _fail(e)

    if env_file:
        env_path = Path(env_file)
        env_path.write_text(creds.to_env_file())
        _print_success(f"Credentials written to {env_path}")
    elif output_json:
        click.echo(creds.to_json())
    else:
        click.echo(creds.to_eval())


@cli.command("exec", context_settings={"ignore_unknown_options": True})
@click.argument("profile", shell_complete=_complete_profiles)
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option(
    "--no-auto-login",
    "no_auto_login",
    is_flag=True,
    default=False,
    help="Do not automatically trigger SSO login if session is expired.",
)
@click.pass_obj
def exec_command(engine: Engine, profile, command, no_auto_login):
    """Run COMMAND with credentials for PROFILE in its environment.

    \b
    Example:
      aws-activate exec my-profile -- aws s3 ls
    """
    try:
        resolution = _resolve(engine, profile, auto_login=not no_auto_login)
    except CredentialError as e:
        _fail(e)

    env = dict(os.environ)
    env["AWS_PROFILE"] = profile
    if resolution.is_static:
        # Inherited keys would take precedence over AWS_PROFILE.
        for key in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SESSION_TOKEN"):
            env.pop(key, None)
    else:
        env.pop("AWS_SESSION_TOKEN", None)
        env.update(resolution.credentials.to_env_vars())

    _print_success(f"Executing '{command[0]}' with profile '{profile}'...")
    try:
        result = subprocess.run(list(command), env=env, check=False)
    except OSError as e:
        _print_error(f"Could not run '{command[0]}': {e.strerror or e}")
        sys.exit(1)
    sys.exit(result.returncode)


@cli.command()
@click.pass_obj
def current(engine: Engine):
    """Show the profile the active session came from."""
    name = engine.writer.get_active_profile_name()
    if not name:
        _print_error("No active profile found")
        sys.exit(1)
    click.echo(name)


@cli.command()
@click.pass_obj
def clear(engine: Engine):
    """Remove the active session from the default credentials."""
    name = engine.writer.get_active_profile_name()
    if not name:
        click.echo(click.style("No active profile found to clear.", fg="yellow"), err=True)
        return

    _print_info(f"Clearing profile '{name}' from default credentials...")
    try:
        engine.writer.clear_active()
    except CredentialError as e:
        _fail(e)
    _print_success("Default profile cleared successfully.")


@cli.command()
@click.argument("profile", required=False, shell_complete=_complete_profiles)
@click.pass_obj
def refresh(engine: Engine, profile):
    """Refresh credentials for PROFILE or the active profile."""
    name = _target_profile(engine, profile)
    _print_info(f"Refreshing credentials for profile: {name}")

    try:
        found = engine.monitor.check_status(name)
        if found is CredentialStatus.VALID:
            _print_success(f"Credentials for profile '{name}' are valid.")
            return
        engine.monitor.auto_refresh(name)
    except CredentialError as e:
        _fail(e)
    _print_success(f"Credentials refreshed for profile: {name}")


@cli.command()
@click.argument("profile", required=False, shell_complete=_complete_profiles)
@click.pass_obj
def status(engine: Engine, profile):
    """Show whether credentials for PROFILE are valid, expiring or expired."""
    name = _target_profile(engine, profile)
    try:
        found = engine.monitor.check_status(name)
    except CredentialError as e:
        _fail(e)
    click.echo(found.value)


@cli.command("list")
@click.pass_obj
def list_profiles(engine: Engine):
    """List available AWS profiles."""
    try:
        profiles = engine.cache.names()
    except CredentialError as e:
        _fail(e)
    if not profiles:
        click.echo(
            click.style(f"No profiles found in {engine.store.config_path}", fg="yellow"), err=True
        )
        return
    for p in profiles:
        click.echo(p)


@cli.command()
@click.argument("text", required=False, default="")
@click.pass_obj
def complete(engine: Engine, text):
    """Print profile names fuzzily matching TEXT."""
    try:
        matches = engine.cache.complete(text, exclude=EXCLUDED_PREFIXES)
    except CredentialError:
        return
    for name in matches:
        click.echo(name)


@cli.command()
@click.argument("region")
@click.option(
    "--profile",
    "profile",
    default=None,
    metavar="NAME",
    shell_complete=_complete_profiles,
    help="Change the region of a profile in the config file instead.",
)
@click.pass_obj
def region(engine: Engine, region, profile):
    """Set the region of the active session."""
    try:
        if profile:
            engine.store.set_profile_region(profile, region)
        else:
            engine.writer.set_active_region(region)
    except CredentialError as e:
        _fail(e)
    _print_success(f"Region set to {region}" + (f" for profile '{profile}'" if profile else ""))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
