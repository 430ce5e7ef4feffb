"""Query expansion through the oracle."""

from typing import Optional

from loguru import logger

from .config import SearchConfig
from .error_handling import OracleError
from .models import QueryExpansion, TimeRange
from .oracle import OracleClient
from .prompts import expansion_prompt
from .schemas import QueryExpansionSchema


class QueryExpander:
    """
    Expands a user query into keywords, candidate categories and intent.

    Returns None, not an error, when the query is too short to be worth
    expanding or the oracle fails.
    """

    def __init__(self, oracle: OracleClient, config: Optional[SearchConfig] = None):
        self.oracle = oracle
        self.config = config or SearchConfig()

    def should_expand(self, query: str) -> bool:
        return len(query.strip()) > self.config.min_expansion_length

    async def expand(self, query: str) -> Optional[QueryExpansion]:
        if not self.should_expand(query):
            return None

        try:
            parsed = await self.oracle.classify(
                expansion_prompt(query),
                QueryExpansionSchema,
                temperature=self.config.expansion_temperature,
                max_output_tokens=self.config.expansion_max_output_tokens
            )
        except OracleError as e:
            logger.warning(f"Search expansion failed for '{query}': {e}")
            return None

        time_range = None
        if parsed.time_range and (parsed.time_range.start or parsed.time_range.end):
            time_range = TimeRange(start=parsed.time_range.start, end=parsed.time_range.end)

        return QueryExpansion(
            expanded_query=parsed.expanded_query,
            categories=list(parsed.categories),
            keywords=list(parsed.keywords),
            intent=parsed.intent,
            time_range=time_range
        )
