"""
Extraction engine.

Runs an ordered list of strategies over a fetched page with deterministic
fallback:
1. Embedded page-state JSON
2. DOM card selectors

The first strategy that yields at least one valid record wins and later
strategies are not invoked.
"""

import logging
from typing import List, Optional, Protocol, Sequence, Tuple

from core.config import ScraperSettings
from core.models import ExtractionContext, RawPage, Record
from .dom_fallback import DomFallbackStrategy
from .embedded_data import EmbeddedDataStrategy

logger = logging.getLogger(__name__)


class ExtractionStrategy(Protocol):
    name: str

    def extract(self, page: RawPage, context: ExtractionContext) -> List[Record]:
        ...


class ExtractionEngine:
    """Ordered strategy runner. Holds no per-page state."""

    def __init__(self, strategies: Sequence[ExtractionStrategy]):
        if not strategies:
            raise ValueError("ExtractionEngine needs at least one strategy")
        self.strategies = tuple(strategies)

    def extract(self, page: RawPage, context: ExtractionContext) -> List[Record]:
        """Records from the first strategy that finds any; empty list otherwise."""
        records, _ = self.extract_with_strategy(page, context)
        return records

    def extract_with_strategy(self, page: RawPage,
                              context: ExtractionContext) -> Tuple[List[Record], Optional[str]]:
        """
        Same as extract(), also naming the strategy that produced the records.

        Returns:
            (records, strategy name) or ([], None)
        """
        if page is None or not page.html or not page.html.strip():
            return [], None

        for strategy in self.strategies:
            try:
                records = strategy.extract(page, context)
            except Exception as e:
                logger.warning(
                    f"[extract] Strategy {strategy.name} failed on {page.url}: {e}", exc_info=True
                )
                continue
            if records:
                logger.info(
                    f"[extract] {strategy.name}: {len(records)} {context.kind} from {page.url}"
                )
                return list(records), strategy.name

        logger.info(f"[extract] No {context.kind} found on {page.url}")
        return [], None


def build_engine(settings: ScraperSettings) -> ExtractionEngine:
    """Default strategy order: embedded JSON, then DOM cards."""
    return ExtractionEngine([
        EmbeddedDataStrategy(settings.base_url),
        DomFallbackStrategy(settings.base_url),
    ])
