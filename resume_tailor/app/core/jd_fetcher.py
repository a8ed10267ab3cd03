# resume_tailor/app/core/jd_fetcher.py

import logging
from typing import Optional
from urllib.parse import urlparse

import requests
import trafilatura
from bs4 import BeautifulSoup

from resume_tailor.app.core.errors import NetworkError, NoContentExtractedError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

# Job boards whose description container is known; everything else goes through trafilatura
_SITE_SELECTORS = {
    "linkedin.com": ".description__text",
    "indeed.com": "#jobDescriptionText",
    "glassdoor.com": ".jobDescriptionContent",
}


class JobDescriptionFetcher:
    """Downloads a job posting and extracts its main text."""

    def __init__(self, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        # replace the python-requests default; keep an agent the caller chose
        agent = self.session.headers.get("User-Agent")
        if not agent or agent.startswith("python-requests"):
            self.session.headers["User-Agent"] = DEFAULT_USER_AGENT

    def fetch(self, url: str) -> str:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError(f"Job description URL is not a valid http(s) URL: {url}")

        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            status = getattr(getattr(exc, "response", None), "status_code", None)
            raise NetworkError(f"Failed to fetch job description from {url}: {exc}",
                               service="job-board", status=status) from exc

        text = self._site_specific(parsed.netloc, resp.text) or self._main_content(resp.text, url)
        if not text:
            raise NoContentExtractedError(f"No job description content could be extracted from {url}")
        logger.debug("Job description fetched url=%s length=%d", url, len(text))
        return text

    def _site_specific(self, host: str, html: str) -> Optional[str]:
        for domain, selector in _SITE_SELECTORS.items():
            if host == domain or host.endswith("." + domain):
                node = BeautifulSoup(html, "html.parser").select_one(selector)
                if node is not None:
                    return node.get_text("\n").strip() or None
        return None

    def _main_content(self, html: str, url: str) -> Optional[str]:
        text = trafilatura.extract(html, url=url, include_tables=True, favor_precision=True)
        if not text:
            text = trafilatura.extract(html, url=url, include_tables=True, favor_recall=True)
        return text.strip() if text else None
