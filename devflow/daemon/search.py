"""Search orchestrator: short-circuit, AI expansion and scoring, substring fallback."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Any, Optional

from loguru import logger

from .bus import Event, EventBus
from .config import SearchConfig
from .expander import QueryExpander
from .models import Entry, QueryExpansion
from .scoring import rank_entries


class SearchMode(Enum):
    """How a query was resolved."""
    ALL = "all"
    SHORT = "short"
    EXPANDED = "expanded"
    SUBSTRING = "substring"
    LOCAL = "local"


@dataclass
class SearchResponse:
    """Ranked (or filtered) entries plus what the oracle made of the query."""
    results: List[Entry]
    mode: SearchMode
    expanded_query: Optional[str] = None
    intent: Optional[str] = None
    scores: Dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "results": [e.to_dict() for e in self.results],
            "mode": self.mode.value,
            "latency_ms": self.latency_ms,
        }
        if self.expanded_query is not None:
            data["expanded_query"] = self.expanded_query
        if self.intent is not None:
            data["intent"] = self.intent
        if self.scores:
            data["scores"] = self.scores
        return data


def local_search(query: str, entries: List[Entry]) -> List[Entry]:
    """
    Offline search: every term longer than one character must appear in
    the entry's content, translation, category words, tags or reasoning.
    """
    if not query.strip():
        return entries

    terms = [t for t in query.lower().split() if len(t) > 1]

    results = []
    for entry in entries:
        searchable = " ".join([
            entry.content,
            entry.translated_content or "",
            entry.category.label,
            *entry.tags,
            entry.reasoning or "",
        ]).lower()

        if all(term in searchable for term in terms):
            results.append(entry)

    return results


def substring_match(query: str, entries: List[Entry], include_category: bool = False) -> List[Entry]:
    """Entries containing the whole query, case-insensitively, in input order."""
    needle = query.lower()
    results = []
    for entry in entries:
        if (
            needle in entry.content.lower()
            or needle in (entry.translated_content or "").lower()
            or any(needle in t.lower() for t in entry.tags)
            or (include_category and needle in entry.category.label)
        ):
            results.append(entry)
    return results


class SearchOrchestrator:
    """
    Resolves a query in one pass:

    - empty query: everything, unscored
    - short query: plain substring match, no oracle call
    - expansion available: score, drop zeros, rank
    - expansion unavailable: substring match that also covers category names
    """

    def __init__(
        self,
        expander: QueryExpander,
        config: Optional[SearchConfig] = None,
        event_bus: Optional[EventBus] = None
    ):
        self.expander = expander
        self.config = config or SearchConfig()
        self._event_bus = event_bus

        # Performance tracking
        self._latency_histogram: List[float] = []

    async def smart_search(self, query: str, entries: List[Entry]) -> SearchResponse:
        start_time = time.perf_counter()

        if not query.strip():
            response = SearchResponse(results=list(entries), mode=SearchMode.ALL)

        elif len(query) < self.config.short_query_length:
            response = SearchResponse(
                results=substring_match(query, entries),
                mode=SearchMode.SHORT
            )

        elif len(query.strip()) <= self.config.min_expansion_length:
            # Padded short query, e.g. "ab "
            response = SearchResponse(
                results=substring_match(query.strip(), entries),
                mode=SearchMode.SHORT
            )

        else:
            expansion = await self.expander.expand(query)
            if expansion is None:
                logger.debug(f"No expansion for '{query}', using substring match")
                response = SearchResponse(
                    results=substring_match(query, entries, include_category=True),
                    mode=SearchMode.SUBSTRING
                )
            else:
                response = self._rank(expansion, entries)

        response.latency_ms = (time.perf_counter() - start_time) * 1000
        await self._record(query, response)
        return response

    def local(self, query: str, entries: List[Entry]) -> SearchResponse:
        start_time = time.perf_counter()
        response = SearchResponse(results=local_search(query, entries), mode=SearchMode.LOCAL)
        response.latency_ms = (time.perf_counter() - start_time) * 1000
        return response

    def _rank(self, expansion: QueryExpansion, entries: List[Entry]) -> SearchResponse:
        ranked = rank_entries(entries, expansion.keywords, expansion.categories)
        return SearchResponse(
            results=[s.entry for s in ranked],
            mode=SearchMode.EXPANDED,
            expanded_query=expansion.expanded_query,
            intent=expansion.intent.value,
            scores={s.entry.id: s.score for s in ranked if s.entry.id}
        )

    async def _record(self, query: str, response: SearchResponse) -> None:
        self._latency_histogram.append(response.latency_ms)
        if len(self._latency_histogram) > 1000:
            self._latency_histogram = self._latency_histogram[-1000:]

        if self._event_bus is not None:
            await self._event_bus.emit(Event(
                type="search.completed",
                data={
                    "query": query,
                    "mode": response.mode.value,
                    "latency_ms": response.latency_ms,
                    "result_count": len(response.results)
                },
                source="search_orchestrator"
            ))

    def get_performance_stats(self) -> Dict[str, float]:
        """Get performance statistics."""
        if not self._latency_histogram:
            return {}

        sorted_latencies = sorted(self._latency_histogram)
        n = len(sorted_latencies)

        return {
            "p50": sorted_latencies[int(n * 0.5)],
            "p95": sorted_latencies[int(n * 0.95)],
            "p99": sorted_latencies[int(n * 0.99)] if n > 100 else sorted_latencies[-1],
            "mean": sum(sorted_latencies) / n,
            "min": sorted_latencies[0],
            "max": sorted_latencies[-1]
        }
