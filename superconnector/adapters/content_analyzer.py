"""
ContentAnalyzer - Best-effort industry classification of a startup website.

The analyzer fetches a small snippet of the site (title and meta
description), asks the LLM for a short industry label, and falls back to a
generic label on any failure. It never raises: the conversation must not
stall because enrichment failed.
"""

from __future__ import annotations

import json
import re
from pathlib import Path

import httpx
from groq import AsyncGroq

from superconnector.core.config import settings
from superconnector.core.logging_config import get_logger
from superconnector.orchestration.dialogue import FALLBACK_INDUSTRY


logger = get_logger("adapters.content_analyzer")

# Maximum characters of page snippet sent to the model
MAX_SNIPPET_LENGTH = 1500

# Labels longer than this are truncated
MAX_LABEL_WORDS = 5

TITLE_PATTERN = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
DESCRIPTION_PATTERN = re.compile(
    r"<meta[^>]+name=[\"']description[\"'][^>]+content=[\"']([^\"']*)[\"']",
    re.IGNORECASE,
)


def normalize_url(url: str) -> str:
    """Add a scheme to bare domains ("acme.ai" -> "https://acme.ai")."""
    url = (url or "").strip()
    if url and not re.match(r"^https?://", url, re.IGNORECASE):
        url = f"https://{url}"
    return url


class ContentAnalyzer:
    """
    Adapter that classifies a website into an industry label.

    Uses temperature=0 for stable labels and returns FALLBACK_INDUSTRY
    whenever the page or the model cannot produce a usable answer.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: AsyncGroq | None = None,
        http_client: httpx.AsyncClient | None = None,
        fetch_timeout_s: float = 5.0,
    ) -> None:
        """
        Initialize the ContentAnalyzer.

        Args:
            api_key: Groq API key. If None, reads from settings/GROQ_API_KEY.
            model: Model name. Defaults to settings.adapters.analyzer_model.
            client: Pre-built Groq client (tests inject a fake here).
            http_client: Shared HTTP client used to fetch page snippets.
            fetch_timeout_s: Timeout for the page snippet fetch.
        """
        self._api_key = api_key or settings.groq_api_key
        self._model = model or settings.adapters.analyzer_model
        if client is None and self._api_key:
            client = AsyncGroq(api_key=self._api_key)
        self._client = client
        self._http = http_client
        self._owns_http = http_client is None
        self._fetch_timeout_s = fetch_timeout_s
        self._system_prompt = self._load_prompt()

    def _load_prompt(self) -> str:
        """Load the system prompt from the prompts directory."""
        prompt_path = Path(__file__).parent.parent / "prompts" / "industry_classifier.md"
        if not prompt_path.exists():
            raise FileNotFoundError(f"Prompt file not found: {prompt_path}")
        return prompt_path.read_text(encoding="utf-8")

    async def _fetch_snippet(self, url: str) -> str:
        """Fetch title and description; empty string if the page is unreachable."""
        if self._http is None:
            self._http = httpx.AsyncClient(follow_redirects=True)
        try:
            response = await self._http.get(url, timeout=self._fetch_timeout_s)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.info("Could not fetch %s for analysis: %s", url, e)
            return ""

        html = response.text
        parts = []
        if match := TITLE_PATTERN.search(html):
            parts.append(match.group(1).strip())
        if match := DESCRIPTION_PATTERN.search(html):
            parts.append(match.group(1).strip())
        return " | ".join(p for p in parts if p)[:MAX_SNIPPET_LENGTH]

    def _parse_response(self, response_text: str) -> str:
        """
        Parse the model output into a short label.

        Accepts {"industry": "..."} JSON (optionally fenced) or a bare
        label. Returns FALLBACK_INDUSTRY if nothing usable is found.
        """
        cleaned = response_text.strip()
        if cleaned.startswith("```"):
            lines = cleaned.split("\n")[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            cleaned = "\n".join(lines).strip()

        label = cleaned
        if cleaned.startswith("{"):
            try:
                data = json.loads(cleaned)
            except json.JSONDecodeError:
                return FALLBACK_INDUSTRY
            if not isinstance(data, dict):
                return FALLBACK_INDUSTRY
            label = str(data.get("industry") or "")

        label = label.strip().strip("\"'.").strip()
        if not label or label.lower() in ("unknown", "n/a", "none"):
            return FALLBACK_INDUSTRY

        words = label.split()
        if len(words) > MAX_LABEL_WORDS:
            label = " ".join(words[:MAX_LABEL_WORDS])
        return label

    async def analyze(self, url: str) -> str:
        """
        Classify the site at url.

        Args:
            url: Website as typed by the visitor.

        Returns:
            Industry label, or FALLBACK_INDUSTRY on any failure.
        """
        url = normalize_url(url)
        if not url or self._client is None:
            return FALLBACK_INDUSTRY

        snippet = await self._fetch_snippet(url)
        content = f"URL: {url}"
        if snippet:
            content += f"\nPage: {snippet}"

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": self._system_prompt},
                    {"role": "user", "content": content},
                ],
                temperature=0.0,
                max_tokens=32,
            )
            response_text = response.choices[0].message.content
        except Exception:
            logger.warning("Industry classification failed for %s", url, exc_info=True)
            return FALLBACK_INDUSTRY

        if not response_text:
            return FALLBACK_INDUSTRY
        return self._parse_response(response_text)

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
