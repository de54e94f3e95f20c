# research.py
# Public-web enrichment behind the web.search tool.
#
# DuckDuckGo first, Wikipedia summary as the fallback. Errors from the
# Wikipedia request propagate; the tool registry turns them into ok=False.

from typing import Any
from urllib.parse import quote

WIKIPEDIA_SUMMARY_URL = "https://en.wikipedia.org/api/rest_v1/page/summary/{title}"


class PrivacyBlocked(Exception):
    """Raised when the privacy mode forbids any outbound lookup."""


class ResearchProvider:
    """
    Looks up public information about a person or topic.

    privacy_mode:
        "cloud"  normal operation
        "local"  no network; returns a local-mode stub
        "off"    lookups refused (PrivacyBlocked)
    """

    def __init__(self, privacy_mode: str = "cloud", max_results: int = 4, timeout: float = 10.0) -> None:
        self.privacy_mode = privacy_mode
        self.max_results = max_results
        self.timeout = timeout

    def enrich_person(self, query: str, privacy_mode: str | None = None) -> dict[str, Any]:
        """privacy_mode, when given, overrides the provider default for this lookup."""
        mode = privacy_mode or self.privacy_mode
        query = query.strip()
        if not query:
            raise ValueError("no query provided")
        if mode == "off":
            raise PrivacyBlocked("privacy_off")
        if mode == "local":
            return {"source": "local", "summary": f"Local mode: cannot fetch web for {query}."}

        results = self._search_ddgs(query)
        if results:
            return {"source": "ddgs", "query": query, "results": results}

        summary = self._wikipedia_summary(query)
        if summary:
            return summary
        return {"source": "none", "query": query, "results": []}

    def _search_ddgs(self, query: str) -> list[dict[str, str]]:
        from ddgs import DDGS

        try:
            # Coerce the generator to a list to ensure actual execution
            hits = list(DDGS().text(query, max_results=self.max_results))
        except Exception:
            return []
        return [
            {"title": h.get("title", ""), "body": h.get("body", ""), "href": h.get("href", "")}
            for h in hits
        ]

    def _wikipedia_summary(self, query: str) -> dict[str, Any] | None:
        import httpx

        url = WIKIPEDIA_SUMMARY_URL.format(title=quote(query.replace(" ", "_")))
        response = httpx.get(url, headers={"accept": "application/json"}, timeout=self.timeout)
        if response.status_code != 200:
            return None
        data = response.json()
        urls = data.get("content_urls") or {}
        page = (urls.get("desktop") or {}).get("page") or (urls.get("mobile") or {}).get("page")
        return {
            "source": "wikipedia",
            "title": data.get("title"),
            "description": data.get("description"),
            "extract": data.get("extract"),
            "url": page,
        }
