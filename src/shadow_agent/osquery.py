"""
osquery Host Identity

Reads the host identifier back out of the provisioned osqueryd binary.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .commands import CommandRunner
from .errors import ExternalToolError, IdentifierParseError
from .layout import DATABASE_NAME

logger = logging.getLogger(__name__)


class HostIdentifier(str, Enum):
    """
    Host identifier mode for osquery enrollment.
    
    UUID uses the hardware UUID from the system_info table (best for
    physical machines). INSTANCE uses osquery's randomly generated instance
    ID, persisted in the osquery database (best for containers/VMs where the
    hardware UUID may be duplicated).
    """
    UUID = "uuid"
    INSTANCE = "instance"
    
    def __str__(self) -> str:
        return self.value
    
    @property
    def query(self) -> str:
        if self is HostIdentifier.UUID:
            return "SELECT uuid FROM system_info;"
        return "SELECT instance_id FROM osquery_info;"
    
    @property
    def field(self) -> str:
        if self is HostIdentifier.UUID:
            return "uuid"
        return "instance_id"
    
    def as_osquery_arg(self) -> str:
        """Returns the osqueryd --host_identifier value"""
        return self.value


@dataclass(frozen=True)
class HostIdentity:
    """Host identifier value and the mode it was read with."""
    value: str
    mode: HostIdentifier


def build_identifier_query(
    osqueryd_path: Path,
    mode: HostIdentifier,
    data_dir: Path,
) -> list:
    """Build the osqueryd shell-mode command for a host identifier query."""
    cmd = [str(osqueryd_path), "-S", "--json"]
    
    # Instance IDs are generated once and persisted in the database
    if mode is HostIdentifier.INSTANCE:
        cmd += ["--database_path", str(Path(data_dir) / DATABASE_NAME)]
    
    cmd.append(mode.query)
    return cmd


def parse_identifier_output(output: str, field: str) -> str:
    """
    Parse osqueryd JSON output: [{"uuid": "..."}] or [{"instance_id": "..."}].
    
    Raises:
        IdentifierParseError: If the first row has no usable value for field
    """
    try:
        rows = json.loads(output)
    except ValueError as e:
        raise IdentifierParseError(f"Failed to parse osquery output: {e}") from e
    
    if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
        raise IdentifierParseError(f"No {field} found in osquery output: {output.strip()!r}")
    
    value = rows[0].get(field)
    if not isinstance(value, str) or not value:
        raise IdentifierParseError(f"No {field} found in osquery output: {output.strip()!r}")
    return value


async def get_host_identifier(
    osqueryd_path: Path,
    mode: HostIdentifier,
    data_dir: Path,
    runner: Optional[CommandRunner] = None,
) -> HostIdentity:
    """
    Query osquery for the host identifier based on the selected mode.
    
    Args:
        osqueryd_path: Provisioned osqueryd binary
        mode: Host identifier mode
        data_dir: Agent data directory (holds osquery.db for INSTANCE mode)
        runner: Command runner (default: subprocess runner)
        
    Returns:
        The host identity to enroll and launch with
    """
    runner = runner or CommandRunner()
    mode = HostIdentifier(mode)
    
    result = await runner.run(build_identifier_query(osqueryd_path, mode, data_dir))
    if not result.ok:
        raise ExternalToolError(result.args, result.returncode, result.stderr)
    
    value = parse_identifier_output(result.stdout, mode.field)
    logger.info(f"Host identifier ({mode}): {value}")
    return HostIdentity(value=value, mode=mode)
