"""
osqueryd Launcher

Builds the osqueryd command line for TLS operation against the shadow server
and supervises the process until it exits.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from .errors import LaunchError
from .layout import InstallLayout
from .osquery import HostIdentity

logger = logging.getLogger(__name__)

# osqueryd reads the enroll secret from this variable, never from argv
ENROLL_SECRET_ENV = "OSQUERY_ENROLL_SECRET"

# Server endpoints used by osqueryd's TLS plugins
ENROLL_ENDPOINT = "/api/osquery/enroll"
CONFIG_ENDPOINT = "/api/osquery/config"
LOG_ENDPOINT = "/api/osquery/log"
DISTRIBUTED_READ_ENDPOINT = "/api/osquery/distributed/read"
DISTRIBUTED_WRITE_ENDPOINT = "/api/osquery/distributed/write"

DISTRIBUTED_TLS_MAX_ATTEMPTS = 10


def default_ca_certs_path(os_name: str) -> Optional[Path]:
    """Get the platform-specific CA certificates path"""
    os_name = os_name.lower()
    if os_name == "darwin":
        return Path("/etc/ssl/cert.pem")
    if os_name == "linux":
        return Path("/etc/ssl/certs/ca-certificates.crt")
    return None


class OsqueryLauncher:
    """
    Runs osqueryd enrolled against the shadow server.

    The host identifier mode always comes from the HostIdentity that was
    used for enrollment so the server sees the same identity at runtime.
    """

    def __init__(
        self,
        osqueryd_path: Path,
        layout: InstallLayout,
        server: str,
        identity: HostIdentity,
        enroll_secret: str,
        *,
        ca_cert: Optional[Path] = None,
        distributed_interval: int = 10,
        verbose: bool = False,
    ):
        self.osqueryd_path = Path(osqueryd_path)
        self.layout = layout
        self.server = server
        self.identity = identity
        self.enroll_secret = enroll_secret
        self.ca_cert = ca_cert
        self.distributed_interval = distributed_interval
        self.verbose = verbose

    def _tls_server_certs(self) -> Optional[Path]:
        if self.ca_cert is not None:
            return Path(self.ca_cert)
        default = default_ca_certs_path(self.layout.os_name)
        if default is not None and default.exists():
            return default
        return None

    def build_args(self) -> List[str]:
        """Build the osqueryd argument list (without the binary)."""
        # TLS configuration
        args = [
            "--config_plugin", "tls",
            "--tls_hostname", self.server,
        ]

        certs = self._tls_server_certs()
        if certs is not None:
            args += ["--tls_server_certs", str(certs)]

        # Enrollment
        args += [
            "--enroll_tls_endpoint", ENROLL_ENDPOINT,
            "--config_tls_endpoint", CONFIG_ENDPOINT,
            "--enroll_secret_env", ENROLL_SECRET_ENV,
        ]

        # Logging
        args += [
            "--logger_plugin", "tls",
            "--logger_tls_endpoint", LOG_ENDPOINT,
        ]

        # Distributed queries
        args += [
            "--disable_distributed", "false",
            "--distributed_plugin", "tls",
            "--distributed_interval", str(self.distributed_interval),
            "--distributed_tls_max_attempts", str(DISTRIBUTED_TLS_MAX_ATTEMPTS),
            "--distributed_tls_read_endpoint", DISTRIBUTED_READ_ENDPOINT,
            "--distributed_tls_write_endpoint", DISTRIBUTED_WRITE_ENDPOINT,
        ]

        # Paths
        args += [
            "--pidfile", str(self.layout.pidfile),
            "--logger_path", str(self.layout.log_dir),
            "--database_path", str(self.layout.database_path),
        ]

        # Host identification - must match what we enrolled with
        args += ["--host_identifier", self.identity.mode.as_osquery_arg()]

        if self.verbose:
            args += [
                "--verbose", "true",
                "--logger_stderr", "true",
            ]

        return args

    def build_command(self) -> List[str]:
        return [str(self.osqueryd_path)] + self.build_args()

    def build_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        env[ENROLL_SECRET_ENV] = self.enroll_secret
        return env

    async def run(self) -> int:
        """
        Start osqueryd and wait for it to exit.

        Returns:
            osqueryd exit status (no restart is attempted)
        """
        self.layout.log_dir.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command()
        logger.debug(f"Starting: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(*cmd, env=self.build_env())
        except OSError as e:
            raise LaunchError(f"Failed to start osqueryd at {self.osqueryd_path}: {e}") from e

        logger.info(f"osqueryd started (pid {process.pid})")
        try:
            returncode = await process.wait()
        except asyncio.CancelledError:
            process.terminate()
            await process.wait()
            raise

        if returncode == 0:
            logger.info("osqueryd exited")
        else:
            logger.error(f"osqueryd exited with status {returncode}")
        return returncode
