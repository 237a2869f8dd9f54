"""
Shared aiohttp client used by every provider adapter.

All third-party calls go through here so that timeouts, headers and the
optional outbound relay are handled in one place. When PROXY_URL is set the
request becomes ``{PROXY_URL}?url={encoded target}`` and the relay returns
the upstream body verbatim.
"""

import aiohttp
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode

logger = logging.getLogger(__name__)

# Common headers for outbound requests
HEADERS = {
    'User-Agent': 'Mozilla/5.0 (compatible; StockTimeMachine/1.0)',
    'Accept': 'application/json,text/plain,*/*',
    'Accept-Language': 'en-US,en;q=0.9',
}

class HttpClient:
    """
    Thin JSON-over-HTTP wrapper around a lazily created aiohttp session.
    """
    def __init__(self, proxy_url: Optional[str] = None, timeout: float = 8.0):
        self.proxy_url = proxy_url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session: Optional[aiohttp.ClientSession] = None

    async def _create_session(self):
        """Create a new aiohttp session with proper configuration"""
        if self.session is None or self.session.closed:
            connector = aiohttp.TCPConnector(
                limit=10,  # Limit concurrent connections
                ttl_dns_cache=300,
                enable_cleanup_closed=True
            )
            self.session = aiohttp.ClientSession(
                headers=HEADERS,
                timeout=self.timeout,
                connector=connector,
                trust_env=True
            )
            logger.debug("Created new aiohttp session")

    def build_url(self, url: str, params: Optional[Dict[str, Any]] = None) -> str:
        target = f"{url}?{urlencode(params)}" if params else url
        if self.proxy_url:
            return f"{self.proxy_url}?url={quote(target, safe='')}"
        return target

    async def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a URL and decode the body as JSON.

        Raises aiohttp.ClientError on transport errors or non-2xx status and
        ValueError when the body is not JSON. Callers treat both as a soft
        failure of the provider.
        """
        await self._create_session()
        full_url = self.build_url(url, params)
        logger.debug(f"GET {full_url}")
        async with self.session.get(full_url, allow_redirects=True) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    async def close(self):
        if self.session is not None and not self.session.closed:
            await self.session.close()
        self.session = None
