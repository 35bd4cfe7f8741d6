"""
Release Downloader

Streams a release artifact to disk with progress reporting.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

import aiofiles
import aiohttp

from .errors import DownloadError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class Downloader:
    """Downloads files over HTTP in bounded chunks."""
    
    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        chunk_size: int = 64 * 1024,
        connect_timeout: float = 30,
        read_timeout: float = 60,
    ):
        self.session = session
        self.chunk_size = chunk_size
        # No cap on the whole transfer; only stalled connects and reads time out
        self.timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=connect_timeout, sock_read=read_timeout
        )
    
    async def download(
        self,
        url: str,
        destination: Path,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Download a URL to a local file.
        
        The body is streamed to disk and never held in memory. When the
        server sends a Content-Length, ``progress`` is called with the
        percentage received each time it increases.
        
        Args:
            url: URL to fetch
            destination: File to write (created or truncated)
            progress: Optional percentage callback
            
        Raises:
            DownloadError: On non-success status, network or write failure.
                A partially written file is left for the caller to remove.
        """
        close_session = False
        session = self.session
        if session is None:
            session = aiohttp.ClientSession(timeout=self.timeout)
            close_session = True
        
        try:
            async with session.get(url) as resp:
                if resp.status < 200 or resp.status >= 300:
                    raise DownloadError(
                        url, f"Download failed with status: {resp.status}", status=resp.status
                    )
                
                total_size = resp.content_length or 0
                logger.debug(f"Downloading {url} ({total_size or 'unknown'} bytes)")
                
                downloaded = 0
                last_percent = -1
                async with aiofiles.open(destination, "wb") as f:
                    async for chunk in resp.content.iter_chunked(self.chunk_size):
                        await f.write(chunk)
                        downloaded += len(chunk)
                        
                        if total_size > 0 and progress is not None:
                            percent = min(100, (downloaded * 100) // total_size)
                            if percent > last_percent:
                                last_percent = percent
                                progress(percent)
                
                logger.debug(f"Downloaded {downloaded} bytes to {destination}")
        except DownloadError:
            raise
        except asyncio.TimeoutError as e:
            raise DownloadError(url, "Download timed out") from e
        except aiohttp.ClientError as e:
            raise DownloadError(url, f"Error downloading: {e}") from e
        except OSError as e:
            raise DownloadError(url, f"Failed to write {destination}: {e}") from e
        finally:
            if close_session:
                await session.close()
