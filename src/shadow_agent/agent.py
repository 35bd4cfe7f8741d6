"""
Shadow Agent

Provisions osquery, enrolls the host with the shadow server and runs
osqueryd under supervision.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from .commands import CommandRunner
from .config import AgentConfig
from .download import ProgressCallback
from .enrollment import EnrollmentClient
from .errors import ConfigError
from .launcher import OsqueryLauncher
from .layout import InstallLayout, default_data_dir
from .osquery import HostIdentity, get_host_identifier
from .provisioner import OsqueryProvisioner
from .version import __version__

logger = logging.getLogger(__name__)


class ShadowAgent:
    """
    Runs the agent pipeline: provision -> host identifier -> enroll -> launch.

    Each step only runs after the previous one succeeded.
    """

    def __init__(
        self,
        config: AgentConfig,
        echo: Optional[Callable[[str], None]] = None,
        progress: Optional[ProgressCallback] = None,
        runner: Optional[CommandRunner] = None,
    ):
        self.config = config
        self.echo = echo or (lambda message: None)
        self.progress = progress
        self.runner = runner or CommandRunner()

        self.data_dir = Path(config.data_dir or default_data_dir())
        self.layout = InstallLayout.for_host(self.data_dir)

    def _ensure_data_dir(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"Failed to create data directory {self.data_dir}: {e}") from e

    async def provision(self) -> Path:
        """Get the osqueryd path - either user-provided or auto-provisioned."""
        self._ensure_data_dir()

        if self.config.osqueryd_path is not None:
            path = Path(self.config.osqueryd_path)
            if not path.exists():
                raise ConfigError(f"osqueryd not found at {path}")
            self.echo(f"  osquery:   {path} (user-provided)")
            return path

        provisioner = OsqueryProvisioner(
            self.data_dir,
            skip_verify=self.config.skip_verify,
            runner=self.runner,
            progress=self.progress,
            echo=self.echo,
        )
        return await provisioner.ensure_provisioned()

    async def identify(self, osqueryd_path: Path) -> HostIdentity:
        """Read the host identifier with the configured mode."""
        identity = await get_host_identifier(
            osqueryd_path,
            self.config.host_identifier,
            self.data_dir,
            runner=self.runner,
        )
        self.echo(f"  Host ID:   {identity.value} ({identity.mode})")
        return identity

    async def enroll(self, identity: HostIdentity) -> str:
        """Enroll with the server and return the osquery enroll secret."""
        if not self.config.org_token:
            raise ConfigError("Organization token is required (--org-token or SHADOW_ORG_TOKEN)")

        self.echo("")
        self.echo("Enrolling with server...")
        client = EnrollmentClient(self.config.server, ca_cert=self.config.ca_cert)
        secret = await client.enroll(identity.value, self.config.org_token)
        self.echo("Enrolled successfully!")
        self.echo("")
        return secret

    def launcher(self, osqueryd_path: Path, identity: HostIdentity, secret: str) -> OsqueryLauncher:
        return OsqueryLauncher(
            osqueryd_path,
            self.layout,
            self.config.server,
            identity,
            secret,
            ca_cert=self.config.ca_cert,
            distributed_interval=self.config.distributed_interval,
            verbose=self.config.verbose,
        )

    async def start(self) -> int:
        """
        Run the full agent pipeline.

        Returns:
            osqueryd exit status
        """
        if not self.config.org_token:
            raise ConfigError("Organization token is required (--org-token or SHADOW_ORG_TOKEN)")

        self.echo(f"Shadow Agent v{__version__}")
        self.echo("─────────────────────────────────────")
        self.echo(f"  Server:    {self.config.server}")
        self.echo(f"  Data dir:  {self.data_dir}")

        osqueryd_path = await self.provision()
        self.layout.ensure_directories()

        identity = await self.identify(osqueryd_path)
        secret = await self.enroll(identity)

        self.echo("Starting osqueryd...")
        if self.config.verbose:
            self.echo("(verbose mode enabled)")
        return await self.launcher(osqueryd_path, identity, secret).run()
