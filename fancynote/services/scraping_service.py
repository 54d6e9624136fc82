"""Web page scraping through the Scrapeless unlocker API."""

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup, Comment

from fancynote.config import settings

logger = logging.getLogger(__name__)

UNWANTED_SELECTORS = (
    "script, style, header, footer, nav, iframe, noscript, aside, .sidebar, .ad, "
    ".advertisement, .related-posts, .comments, #comments, .social-links, "
    ".cookie-banner, .cookie-notice, form, button, input"
)
CONTAINER_SELECTORS = [
    "article",
    "main",
    ".main-content",
    ".article-body",
    ".post-content",
    ".entry-content",
    "#content",
    "#main",
    "body",
]
BLOCK_TAGS = ["p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote", "pre"]
BOILERPLATE = re.compile(
    r"^(skip to content|read more|advertisement|share this|related posts)", re.IGNORECASE
)


@dataclass
class ScrapeResult:
    """Outcome of scraping one URL; never raised, always returned."""

    success: bool
    content: str = ""
    title: str = ""
    error: str | None = None


def extract_domain(url: str) -> str:
    """Host name of a URL without a leading "www."."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        hostname = None
    if not hostname:
        logger.error(f"Error parsing URL for domain extraction: {url}")
        return "invalid_url"
    return hostname.removeprefix("www.")


def sanitize_filename(name: str) -> str:
    """Strip characters not allowed in file names, cap length at 100."""
    sanitized = re.sub(r'[<>:"/\\|?*]', "", name or "")
    sanitized = re.sub(r"\s+", "_", sanitized)[:100]
    return sanitized or "untitled_page"


def _normalize(text: str) -> str:
    return re.sub(r"\s\s+", " ", text).strip()


def extract_main_content(html: str) -> tuple[str, str]:
    """
    Pull readable main-body text and the page title out of an HTML document.

    Returns:
        Tuple of (content, title); content is empty when nothing usable was found
    """
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""

    for element in soup.select(UNWANTED_SELECTORS):
        element.decompose()

    container = None
    for selector in CONTAINER_SELECTORS:
        candidate = soup.select_one(selector)
        if candidate is not None and len(re.sub(r"\s+", "", candidate.get_text())) > 100:
            container = candidate
            break
    if container is None:
        container = soup.body or soup

    lines: list[str] = []
    for element in container.find_all(BLOCK_TAGS + ["div"]):
        # Only leaf divs, containers are covered by their children
        if element.name == "div" and element.find(BLOCK_TAGS + ["div"]):
            continue
        text = _normalize(element.get_text(" "))
        if not text or (len(text) < 15 and not text.endswith((".", "?", "!"))):
            continue
        if BOILERPLATE.match(text):
            continue
        lines.append(text)

    if len(lines) < 3:
        logger.info(f"Block extraction yielded {len(lines)} lines, using text nodes")
        lines = []
        for node in container.find_all(string=True):
            if isinstance(node, Comment):
                continue
            text = _normalize(str(node))
            if len(text) > 10:
                lines.append(text)

    content = re.sub(r"(\n\n)+", "\n\n", "\n\n".join(lines)).strip()
    return content, title


def web_content_document(url: str, content: str) -> bytes:
    """Text file body stored for a scraped page."""
    return f"Original URL: {url}\n\n{content}".encode("utf-8")


class ScrapingService:
    """Fetches rendered pages through Scrapeless and extracts their text."""

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url or settings.scrapeless_url
        self.api_key = api_key if api_key is not None else settings.scrapeless_api_key
        self._transport = transport

    async def scrape(self, url: str) -> ScrapeResult:
        """
        Scrape one URL.

        Args:
            url: Page to fetch

        Returns:
            ScrapeResult with content and title, or a failure reason
        """
        if not self.api_key:
            logger.error("SCRAPELESS_API_KEY is not set in environment variables.")
            return ScrapeResult(success=False, error="Scraping service API key not configured.")

        payload = {
            "actor": "unlocker.webunlocker",
            "proxy": {"country": "ANY"},
            "input": {
                "url": url,
                "method": "GET",
                "redirect": True,
                "js_render": True,
                "js_instructions": [{"wait": 1500}],
            },
        }

        logger.info(f"[ScrapingService] Sending request to Scrapeless for URL: {url}")
        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                response = await client.post(
                    self.api_url,
                    headers={"Content-Type": "application/json", "x-api-token": self.api_key},
                    json=payload,
                    timeout=60.0,
                )
            except httpx.TimeoutException:
                return ScrapeResult(success=False, error="Request timed out after 60 seconds.")
            except httpx.RequestError as e:
                return ScrapeResult(success=False, error=f"Request failed: {e}")

        if not response.is_success:
            error_message = f"API Error: Status {response.status_code}"
            try:
                body = response.json()
                error_message = body.get("message") or body.get("error") or error_message
            except ValueError:
                pass
            logger.error(f"[ScrapingService] Scrapeless API error for {url}: {error_message}")
            return ScrapeResult(success=False, error=error_message)

        try:
            result = response.json()
        except ValueError as e:
            return ScrapeResult(success=False, error=f"Failed to process API response: {e}")

        html = None
        if isinstance(result, dict):
            data = result.get("data")
            if isinstance(data, dict):
                data = data.get("body")
            html = data or result.get("html") or result.get("content")
        if not html or not isinstance(html, str):
            logger.warning(f"[ScrapingService] No HTML content in response for {url}")
            return ScrapeResult(success=False, error="No HTML content found in response.")

        content, title = extract_main_content(html)
        if not content:
            return ScrapeResult(success=False, error="Extracted content is empty.")

        logger.info(f"[ScrapingService] Extracted {len(content)} characters from {url}")
        return ScrapeResult(
            success=True,
            content=content,
            title=sanitize_filename(title or extract_domain(url)),
        )


def get_scraping_service() -> ScrapingService:
    return ScrapingService()
