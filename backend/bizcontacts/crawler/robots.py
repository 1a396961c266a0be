"""robots.txt policy check."""

import logging
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import httpx

logger = logging.getLogger(__name__)

ROBOTS_TIMEOUT_SECONDS = 5.0


class RobotsChecker:
    """Fetches robots.txt once per host. A missing or unreachable file allows crawling."""

    def __init__(self, client: httpx.AsyncClient, user_agent: str):
        self.client = client
        self.user_agent = user_agent
        self._parsers: dict[str, RobotFileParser | None] = {}

    async def _parser_for(self, url: str) -> RobotFileParser | None:
        parts = urlparse(url)
        origin = f"{parts.scheme}://{parts.netloc}"
        if origin in self._parsers:
            return self._parsers[origin]

        parser = None
        try:
            resp = await self.client.get(
                f"{origin}/robots.txt",
                timeout=ROBOTS_TIMEOUT_SECONDS,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
            )
            if resp.status_code < 400:
                parser = RobotFileParser()
                parser.parse(resp.text.splitlines())
        except httpx.HTTPError as e:
            logger.debug(f"robots.txt unavailable for {origin}: {e}")

        self._parsers[origin] = parser
        return parser

    async def allowed(self, url: str) -> bool:
        parser = await self._parser_for(url)
        if parser is None:
            return True
        return parser.can_fetch(self.user_agent, url)
