"""Plain web search and page fetch used by the interactive session."""

from __future__ import annotations

import html
import json
import re
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

SEARCH_ENDPOINT = "https://api.duckduckgo.com/"
USER_AGENT = "copilot-agent/0.1"

Fetcher = Callable[[str, float], str]

_SCRIPT_STYLE = re.compile(r"<(script|style)\b.*?</\1>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES = re.compile(r"\n\s*\n+")


class WebError(RuntimeError):
    """Raised when a search or fetch request fails."""


@dataclass(slots=True)
class WebResult:
    """Single search hit."""

    title: str
    url: str


def _http_get(url: str, timeout: float) -> str:
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read()
            charset = response.headers.get_content_charset() or "utf-8"
    except TimeoutError as error:  # pragma: no cover - network-dependent
        raise WebError(f"Request to {url} timed out.") from error
    except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
        raise WebError(f"HTTP {error.code} from {url}") from error
    except urllib.error.URLError as error:  # pragma: no cover - network-dependent
        raise WebError(f"Failed to reach {url}: {error.reason}") from error
    return raw.decode(charset, errors="replace")


def web_search(
    query: str,
    limit: int = 5,
    *,
    fetcher: Optional[Fetcher] = None,
    timeout: float = 15.0,
) -> List[WebResult]:
    """Query the DuckDuckGo instant-answer API and return up to ``limit`` hits."""
    if not query.strip():
        return []
    params = urllib.parse.urlencode(
        {"q": query, "format": "json", "no_html": 1, "skip_disambig": 1}
    )
    raw = (fetcher or _http_get)(f"{SEARCH_ENDPOINT}?{params}", timeout)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as error:
        raise WebError("Search endpoint returned invalid JSON.") from error
    if not isinstance(data, dict):
        return []

    results: List[WebResult] = []
    abstract_url = data.get("AbstractURL")
    if isinstance(abstract_url, str) and abstract_url:
        title = data.get("Heading") or data.get("AbstractText") or abstract_url
        results.append(WebResult(title=str(title), url=abstract_url))
    for topic in _flatten_topics(data.get("RelatedTopics") or []):
        url = topic.get("FirstURL")
        text = topic.get("Text")
        if isinstance(url, str) and url:
            results.append(WebResult(title=str(text or url), url=url))
    return results[: max(limit, 0)]


def _flatten_topics(topics: Iterable[Any]) -> Iterable[dict]:
    for topic in topics:
        if not isinstance(topic, dict):
            continue
        nested = topic.get("Topics")
        if isinstance(nested, list):
            yield from _flatten_topics(nested)
        else:
            yield topic


def fetch_page(
    url: str,
    max_chars: int = 4000,
    *,
    fetcher: Optional[Fetcher] = None,
    timeout: float = 15.0,
) -> str:
    """Fetch ``url`` and return its visible text, truncated to ``max_chars``."""
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in {"http", "https"}:
        raise WebError(f"Unsupported URL scheme: {url}")
    raw = (fetcher or _http_get)(url, timeout)
    text = html.unescape(_TAG.sub(" ", _SCRIPT_STYLE.sub(" ", raw)))
    text = _BLANK_LINES.sub("\n\n", _WHITESPACE.sub(" ", text)).strip()
    if len(text) > max_chars:
        text = text[:max_chars] + "\n...[truncated]"
    return text


__all__ = ["WebError", "WebResult", "fetch_page", "web_search"]
