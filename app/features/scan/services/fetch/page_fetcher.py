from dataclasses import dataclass
from typing import Optional

import httpx

from app.features.scan.exceptions import FetchError, FetchTimeoutError
from app.platform.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FetchedPage:
    url: str
    final_url: str
    status_code: int
    html: str


class PageFetcher:
    """Fetches the markup of the page to scan with a browser-like identity."""

    def __init__(
        self,
        user_agent: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.user_agent = user_agent
        self.timeout = timeout
        self.transport = transport

    def fetch(self, url: str) -> FetchedPage:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }
        try:
            with httpx.Client(
                headers=headers,
                timeout=self.timeout,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = client.get(url)
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(f"Fetching {url} timed out after {self.timeout:g}s") from e
        except httpx.InvalidURL as e:
            raise FetchError(f"Invalid URL {url!r}: {e}") from e
        except httpx.UnsupportedProtocol as e:
            raise FetchError(f"Unsupported URL {url!r}: {e}") from e
        except httpx.HTTPError as e:
            raise FetchError(f"Network error fetching {url}: {e}") from e

        if not response.is_success:
            raise FetchError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        logger.info(f"Fetched {url} ({response.status_code}, {len(response.text)} characters)")
        return FetchedPage(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            html=response.text,
        )
