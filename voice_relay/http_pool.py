"""
Lazily created, reusable aiohttp sessions.
"""
from typing import Optional

import aiohttp

from logging_setup import get_logger, Component

logger = get_logger(Component.WEBHOOK_SERVER)


class PooledSession:
    """
    Owns one aiohttp.ClientSession, created on first use inside the running
    loop and recreated if it was closed.
    """

    def __init__(
        self,
        name: str,
        total_timeout: float,
        connect_timeout: Optional[float] = 10.0,
        pool_size: int = 10,
    ):
        self.name = name
        self.total_timeout = total_timeout
        self.connect_timeout = connect_timeout
        self.pool_size = pool_size
        self._http_session: Optional[aiohttp.ClientSession] = None

    def get(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.pool_size,
                limit_per_host=self.pool_size,
                ttl_dns_cache=300,
            )
            timeout = aiohttp.ClientTimeout(
                total=self.total_timeout,
                connect=self.connect_timeout,
            )
            self._http_session = aiohttp.ClientSession(connector=connector, timeout=timeout)
            logger.debug(
                "HTTP connection pool created",
                pool=self.name,
                pool_size=self.pool_size,
                total_timeout_ms=int(self.total_timeout * 1000),
            )
        return self._http_session

    async def aclose(self) -> None:
        """
        Best-effort cleanup of the HTTP session.
        Safe to call multiple times.
        """
        if self._http_session is not None:
            try:
                await self._http_session.close()
            except Exception as e:
                logger.warning(
                    "Error closing HTTP session",
                    pool=self.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            finally:
                self._http_session = None
