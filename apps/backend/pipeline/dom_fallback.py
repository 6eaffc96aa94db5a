"""
DOM fallback extractor.

Used when the page carries no usable embedded JSON. Probes card selectors in
order (data attributes first, then class names) and maps every element matched
by the first selector that hits.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from core.models import ExtractionContext, RawPage, Record, TargetKind
from .records import ELEMENT_MAPPERS

logger = logging.getLogger(__name__)

DEFAULT_SELECTORS: Dict[str, Tuple[str, ...]] = {
    TargetKind.COMPANIES: (
        '[data-test="startup-card"]',
        '[data-startup-id]',
        '.startup-card',
        '.company-card',
        '.company-item',
    ),
    TargetKind.JOBS: (
        '[data-test="job-card"]',
        '[data-job-id]',
        '.job-card',
        '.job-item',
        '.job-listing',
    ),
}


class DomFallbackStrategy:
    """Extracts records from repeated card elements in the markup."""

    name = "dom"

    def __init__(self, base_url: str, selectors: Optional[Dict[str, Sequence[str]]] = None):
        self.base_url = base_url
        self.selectors = selectors or DEFAULT_SELECTORS

    def extract(self, page: RawPage, context: ExtractionContext) -> List[Record]:
        if not page.html or not page.html.strip():
            return []

        soup = BeautifulSoup(page.html, "lxml")
        elements, selector = [], None
        for candidate in self.selectors.get(context.kind, ()):
            elements = soup.select(candidate)
            if elements:
                selector = candidate
                break

        if not elements:
            logger.debug(f"[extract] No {context.kind} cards matched on {page.url}")
            return []

        mapper = ELEMENT_MAPPERS[context.kind]
        records = []
        for element in elements:
            try:
                record = mapper(element, page.url, context.company, self.base_url)
            except Exception as e:
                logger.debug(f"[extract] Skipping unmappable {context.kind} card on {page.url}: {e}")
                continue
            if record is not None:
                records.append(record)

        logger.debug(
            f"[extract] {len(records)}/{len(elements)} {context.kind} mapped from '{selector}' on {page.url}"
        )
        return records
