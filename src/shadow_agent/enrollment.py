"""
Server Enrollment

Trades the organization token and host identifier for a per-host osquery
enroll secret.
"""

import asyncio
import logging
import ssl
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp

from .errors import ConfigError, EnrollmentError

logger = logging.getLogger(__name__)

PRODUCT = "shadow"


def enroll_url(server: str, product: str = PRODUCT, scheme: str = "https") -> str:
    """Build the enrollment endpoint URL for a server host."""
    return f"{scheme}://{server.rstrip('/')}/api/{product}/enroll"


def create_ssl_context(ca_cert: Optional[Path] = None) -> ssl.SSLContext:
    """
    Create SSL context for the enrollment request.
    
    Args:
        ca_cert: Optional PEM file trusted in addition to the system roots
    """
    ssl_context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    if ca_cert is not None:
        ca_cert = Path(ca_cert)
        if not ca_cert.is_file():
            raise ConfigError(f"CA certificate not found: {ca_cert}")
        try:
            ssl_context.load_verify_locations(cafile=str(ca_cert))
        except ssl.SSLError as e:
            raise ConfigError(f"Invalid CA certificate {ca_cert}: {e}") from e
        logger.debug(f"Trusting CA certificate {ca_cert}")
    return ssl_context


class EnrollmentClient:
    """Client for the shadow enrollment endpoint."""
    
    def __init__(
        self,
        server: str,
        *,
        ca_cert: Optional[Path] = None,
        scheme: str = "https",
        timeout: float = 30,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.server = server
        self.url = enroll_url(server, scheme=scheme)
        self.ca_cert = ca_cert
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session = session
    
    async def enroll(self, host_id: str, org_token: str) -> str:
        """
        Enroll this host with the server.
        
        Args:
            host_id: Host identifier read from osquery
            org_token: Organization token
            
        Returns:
            The enroll secret for osqueryd
            
        Raises:
            EnrollmentError: On connection failure, non-2xx status or bad response
        """
        payload = {"host_id": host_id, "org_token": org_token}
        
        close_session = False
        session = self.session
        if session is None:
            connector = None
            if self.url.startswith("https://"):
                connector = aiohttp.TCPConnector(ssl=create_ssl_context(self.ca_cert))
            session = aiohttp.ClientSession(connector=connector, timeout=self.timeout)
            close_session = True
        
        try:
            logger.info(f"Enrolling host {host_id} at {self.url}")
            async with session.post(self.url, json=payload) as resp:
                if resp.status < 200 or resp.status >= 300:
                    body = await resp.text()
                    logger.error(f"Enrollment failed: {resp.status} - {body}")
                    raise EnrollmentError(
                        f"Enrollment failed ({resp.status}): {body}",
                        status=resp.status,
                        body=body,
                    )
                
                try:
                    data: Dict[str, Any] = await resp.json(content_type=None)
                except ValueError as e:
                    raise EnrollmentError(f"Failed to parse enrollment response: {e}") from e
        except asyncio.TimeoutError as e:
            raise EnrollmentError(f"Enrollment request to {self.server} timed out") from e
        except aiohttp.ClientError as e:
            raise EnrollmentError(f"Failed to connect to server {self.server}: {e}") from e
        finally:
            if close_session:
                await session.close()
        
        secret = data.get("enroll_secret") if isinstance(data, dict) else None
        if not isinstance(secret, str) or not secret:
            raise EnrollmentError("Failed to parse enrollment response: missing enroll_secret")
        
        logger.info("Enrolled successfully")
        return secret
