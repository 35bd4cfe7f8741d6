"""
Agent CLI

Command-line interface for the shadow agent.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from .agent import ShadowAgent
from .config import DEFAULT_CONFIG_FILE, DEFAULT_SERVER, AgentConfig, load_config, save_config
from .errors import ConfigError, ShadowAgentError, UnsupportedPlatformError
from .layout import InstallLayout, default_data_dir
from .platform import detect_platform
from .releases import OSQUERY_VERSION, download_url, resolve_descriptor
from .version import __version__

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _configure_logging(config: AgentConfig) -> None:
    """Apply the configured log level and optional log file."""
    root = logging.getLogger()
    level = logging.DEBUG if config.verbose else getattr(logging, config.log_level.upper())
    root.setLevel(level)

    if config.log_file:
        try:
            handler = logging.FileHandler(config.log_file)
        except OSError as e:
            raise ConfigError(f"Cannot open log file {config.log_file}: {e}") from e
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        root.addHandler(handler)


def _load(config_file: str, **overrides) -> AgentConfig:
    config = load_config(Path(config_file)).merge(**overrides)
    _configure_logging(config)
    return config


def _print_progress(percent: int) -> None:
    """Simple progress indicator"""
    click.echo(f"\r             Downloaded: {percent}%   ", nl=False)
    if percent >= 100:
        click.echo("")


def _fail(error: Exception) -> None:
    logger.debug("Agent failed", exc_info=error)
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(__version__, prog_name="shadow-agent")
def cli():
    """Hyprwatch Shadow Agent

    Enrolls with a Hyprwatch server and runs osqueryd to collect system data.
    Automatically downloads osquery if not present.
    """
    pass


@cli.command()
@click.option("--server", prompt="Server host", default=DEFAULT_SERVER, help="Server hostname")
@click.option("--org-token", prompt="Organization token", help="Organization token for enrollment")
@click.option("--ca-cert", default=None, type=click.Path(dir_okay=False), help="CA certificate (PEM) for a private server")
@click.option("--data-dir", default=None, type=click.Path(file_okay=False), help="Data directory for osquery database and logs")
@click.option("--host-identifier", default="uuid", type=click.Choice(["uuid", "instance"], case_sensitive=False), help="Host identifier mode")
@click.option("--config-file", default=DEFAULT_CONFIG_FILE, help="Config file path")
def configure(server: str, org_token: str, ca_cert: Optional[str], data_dir: Optional[str], host_identifier: str, config_file: str):
    """Configure the agent"""
    try:
        config = AgentConfig().merge(
            server=server,
            org_token=org_token,
            ca_cert=ca_cert,
            data_dir=data_dir,
            host_identifier=host_identifier,
        )
        config_path = Path(config_file)
        save_config(config, config_path)
    except ShadowAgentError as e:
        _fail(e)

    click.echo(f"Configuration saved to {config_path}")


@cli.command()
@click.option("--org-token", "-t", envvar="SHADOW_ORG_TOKEN", default=None, help="Organization token for enrollment (required)")
@click.option("--server", "-s", envvar="SHADOW_SERVER_HOST", default=None, help=f"Server hostname (default: {DEFAULT_SERVER})")
@click.option("--ca-cert", envvar="SHADOW_CA_CERT", default=None, type=click.Path(dir_okay=False), help="CA certificate (PEM) for a private server")
@click.option("--data-dir", "-d", envvar="SHADOW_DATA_DIR", default=None, type=click.Path(file_okay=False), help="Data directory for osquery database and logs")
@click.option("--osqueryd-path", "-o", envvar="OSQUERYD_PATH", default=None, type=click.Path(dir_okay=False), help="Path to osqueryd binary (skips auto-download if provided)")
@click.option("--verbose", "-v", envvar="SHADOW_VERBOSE", is_flag=True, help="Enable verbose logging")
@click.option("--distributed-interval", default=None, type=int, help="Distributed query polling interval in seconds (default: 10)")
@click.option("--skip-verify", is_flag=True, hidden=True, help="Skip checksum verification when downloading osquery (development only)")
@click.option(
    "--host-identifier",
    envvar="SHADOW_HOST_IDENTIFIER",
    default=None,
    type=click.Choice(["uuid", "instance"], case_sensitive=False),
    help="Host identifier mode: 'uuid' uses hardware UUID, 'instance' uses osquery's random "
    "instance ID (recommended for containers/VMs with duplicate hardware UUIDs)",
)
@click.option("--config-file", default=DEFAULT_CONFIG_FILE, help="Config file path")
def start(
    org_token: Optional[str],
    server: Optional[str],
    ca_cert: Optional[str],
    data_dir: Optional[str],
    osqueryd_path: Optional[str],
    verbose: bool,
    distributed_interval: Optional[int],
    skip_verify: bool,
    host_identifier: Optional[str],
    config_file: str,
):
    """Enroll with the server and run osqueryd"""
    try:
        config = _load(
            config_file,
            org_token=org_token,
            server=server,
            ca_cert=ca_cert,
            data_dir=data_dir,
            osqueryd_path=osqueryd_path,
            verbose=verbose or None,
            distributed_interval=distributed_interval,
            skip_verify=skip_verify or None,
            host_identifier=host_identifier,
        )
        agent = ShadowAgent(config, echo=click.echo, progress=_print_progress)
        returncode = asyncio.run(agent.start())
    except ShadowAgentError as e:
        _fail(e)

    sys.exit(returncode)


@cli.command()
@click.option("--data-dir", "-d", envvar="SHADOW_DATA_DIR", default=None, type=click.Path(file_okay=False), help="Data directory for osquery")
@click.option("--skip-verify", is_flag=True, hidden=True, help="Skip checksum verification (development only)")
@click.option("--config-file", default=DEFAULT_CONFIG_FILE, help="Config file path")
def provision(data_dir: Optional[str], skip_verify: bool, config_file: str):
    """Download and install osquery without enrolling"""
    try:
        config = _load(config_file, data_dir=data_dir, skip_verify=skip_verify or None)
        agent = ShadowAgent(config, echo=click.echo, progress=_print_progress)
        path = asyncio.run(agent.provision())
    except ShadowAgentError as e:
        _fail(e)

    click.echo(str(path))


@cli.command()
def version():
    """Show agent version and system information"""
    platform_info = detect_platform()
    data_dir = default_data_dir()

    click.echo("Shadow Agent")
    click.echo("=" * 50)
    click.echo(f"Package Version: {__version__}")
    click.echo(f"osquery Version: {OSQUERY_VERSION}")
    click.echo("")
    click.echo("Platform Information:")
    click.echo(f"  Platform: {platform_info.platform}")
    click.echo(f"  Architecture: {platform_info.architecture}")
    click.echo(f"  Hostname: {platform_info.hostname}")
    click.echo(f"  OS Version: {platform_info.version}")
    click.echo("")
    click.echo("osquery Release:")
    try:
        descriptor = resolve_descriptor(platform_info.platform, platform_info.architecture)
        click.echo(f"  Archive: {descriptor.download_filename} ({descriptor.archive_kind.value})")
        click.echo(f"  URL: {download_url(descriptor)}")
        click.echo(f"  SHA-256: {descriptor.sha256}")
    except UnsupportedPlatformError as e:
        click.echo(f"  {e}")
    click.echo("")
    layout = InstallLayout(data_dir, platform_info.platform)
    click.echo(f"Default data dir: {data_dir}")
    click.echo(f"  osqueryd: {layout.osqueryd_path} ({'installed' if layout.is_provisioned() else 'not installed'})")


if __name__ == "__main__":
    cli()
