from __future__ import annotations

import logging
import re
from urllib.parse import urldefrag, urljoin

import httpx
from bs4 import BeautifulSoup

from .errors import FetchFailedError, NetworkTimeoutError

logger = logging.getLogger(__name__)

MENU_LINK_PATTERN = re.compile(r"menu|carte|food|drink", re.IGNORECASE)
SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:", "data:")
PDF_CONTENT_TYPE = "application/pdf"
PDF_PLACEHOLDER = "[PDF menu detected: PDF content extraction is not supported]"
DEFAULT_TIMEOUT_SECONDS = 20.0
USER_AGENT = "Mozilla/5.0 (compatible; ICUPA-MenuBot/1.0)"


def _download(url: str, timeout: float, client: httpx.Client | None) -> httpx.Response:
    try:
        if client is not None:
            response = client.get(url)
        else:
            with httpx.Client(
                timeout=timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            ) as owned_client:
                response = owned_client.get(url)
        response.raise_for_status()
        return response
    except httpx.TimeoutException as error:
        raise NetworkTimeoutError(url, timeout) from error
    except httpx.HTTPStatusError as error:
        raise FetchFailedError(f"HTTP {error.response.status_code} fetching {url}") from error
    except (httpx.HTTPError, httpx.InvalidURL) as error:
        raise FetchFailedError(f"Network error fetching {url}: {error}") from error


def _is_fetchable_href(href: str) -> bool:
    stripped = href.strip()
    if not stripped or stripped.startswith("#"):
        return False
    return not stripped.lower().startswith(SKIPPED_SCHEMES)


def extract_menu_links(html: str, base_url: str) -> list[str]:
    """Menu-looking anchors in `html`, absolute and deduplicated in page order."""
    links: list[str] = []
    seen: set[str] = set()

    soup = BeautifulSoup(html, "html.parser")

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not _is_fetchable_href(href) or not MENU_LINK_PATTERN.search(href):
            continue

        absolute, _fragment = urldefrag(urljoin(base_url, href))
        if absolute in seen:
            continue

        seen.add(absolute)
        links.append(absolute)

    return links


def discover_menu_links(
    root_url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    client: httpx.Client | None = None,
) -> list[str]:
    """
    Scan a vendor website for menu pages.

    Always returns at least one URL: when nothing matches, or the site
    cannot be reached, the root URL itself is the only candidate.
    """
    try:
        response = _download(root_url, timeout, client)
    except (FetchFailedError, NetworkTimeoutError) as error:
        logger.warning("Menu link discovery failed for %s, using root url: %s", root_url, error)
        return [root_url]

    links = extract_menu_links(response.text, str(response.url))
    if not links:
        logger.info("No menu links found on %s, using root url", root_url)
        return [root_url]

    logger.info("Discovered %d menu link(s) on %s", len(links), root_url)
    return links


def fetch_page_content(
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    client: httpx.Client | None = None,
) -> str:
    """Body text of `url`; a placeholder for PDFs and an empty string on failure."""
    try:
        response = _download(url, timeout, client)
    except (FetchFailedError, NetworkTimeoutError) as error:
        logger.warning("Content fetch failed for %s: %s", url, error)
        return ""

    content_type = response.headers.get("content-type", "").lower()
    if PDF_CONTENT_TYPE in content_type:
        logger.info("PDF menu at %s, returning placeholder", url)
        return PDF_PLACEHOLDER

    return response.text
