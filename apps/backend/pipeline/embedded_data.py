"""
Embedded JSON extractor.

Reads the server-rendered page state the site ships in
`<script id="__NEXT_DATA__" type="application/json">` and maps the first
collection found along a list of key paths.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from core.models import ExtractionContext, RawPage, Record, TargetKind
from .records import JSON_MAPPERS

logger = logging.getLogger(__name__)

NEXT_DATA_SCRIPT_ID = "__NEXT_DATA__"

DEFAULT_KEY_PATHS: Dict[str, Tuple[str, ...]] = {
    TargetKind.COMPANIES: (
        "props.pageProps.companies",
        "props.pageProps.data.companies",
        "props.pageProps.startups",
        "props.serverData.companies",
    ),
    TargetKind.JOBS: (
        "props.pageProps.jobs",
        "props.pageProps.data.jobs",
        "props.pageProps.company.jobs",
        "props.serverData.jobs",
    ),
}


def resolve_path(data: Any, path: str) -> Any:
    """Walk a dotted key path through nested dicts. Missing keys give None."""
    current = data
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


class EmbeddedDataStrategy:
    """Extracts records from the embedded page-state JSON."""

    name = "embedded_json"

    def __init__(self, base_url: str, key_paths: Optional[Dict[str, Sequence[str]]] = None,
                 script_id: str = NEXT_DATA_SCRIPT_ID):
        self.base_url = base_url
        self.key_paths = key_paths or DEFAULT_KEY_PATHS
        self.script_id = script_id

    def extract(self, page: RawPage, context: ExtractionContext) -> List[Record]:
        payload = self._load_payload(page.html)
        if payload is None:
            return []

        nodes, path = self._find_collection(payload, self.key_paths.get(context.kind, ()))
        if not nodes:
            logger.debug(f"[extract] No {context.kind} collection in embedded JSON for {page.url}")
            return []

        mapper = JSON_MAPPERS[context.kind]
        records = []
        for node in nodes:
            if not isinstance(node, dict):
                continue
            try:
                record = mapper(node, page.url, context.company, self.base_url)
            except Exception as e:
                logger.debug(f"[extract] Skipping unmappable {context.kind} element on {page.url}: {e}")
                continue
            if record is not None:
                records.append(record)

        logger.debug(
            f"[extract] {len(records)}/{len(nodes)} {context.kind} mapped from '{path}' on {page.url}"
        )
        return records

    def _load_payload(self, html: str) -> Optional[Any]:
        if not html:
            return None
        soup = BeautifulSoup(html, "lxml")
        script = soup.find("script", id=self.script_id)
        if script is None:
            return None
        raw = script.string
        if not raw or not raw.strip():
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, ValueError) as e:
            logger.debug(f"[extract] Malformed embedded JSON: {e}")
            return None

    @staticmethod
    def _find_collection(payload: Any, paths: Sequence[str]) -> Tuple[List[Any], Optional[str]]:
        for path in paths:
            value = resolve_path(payload, path)
            if isinstance(value, list) and value:
                return value, path
        return [], None
