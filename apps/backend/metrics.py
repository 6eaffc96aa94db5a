"""
Prometheus counters for scraper runs.

Counters are process-global and safe to increment from fetch worker threads.
"""
from typing import Dict

from prometheus_client import Counter

pages_fetched = Counter(
    'scraper_pages_fetched', 'Pages fetched, by outcome', ['outcome']
)
fetch_blocked = Counter(
    'scraper_fetch_blocked', 'Responses signalling defensive blocking', ['status']
)
records_extracted = Counter(
    'scraper_records_extracted', 'Records extracted', ['entity', 'strategy']
)
records_saved = Counter(
    'scraper_records_saved', 'Records persisted', ['entity']
)
targets_failed = Counter(
    'scraper_targets_failed', 'Targets that produced no records', ['kind']
)


def incr_fetched(outcome: str, n: int = 1):
    """Count a fetch outcome ('ok', 'transport', 'http_status', 'empty_body')."""
    if n <= 0:
        return
    pages_fetched.labels(outcome=outcome).inc(n)


def incr_blocked(status_code: int):
    fetch_blocked.labels(status=str(status_code)).inc()


def incr_extracted(entity: str, strategy: str, n: int = 1):
    if n <= 0:
        return
    records_extracted.labels(entity=entity, strategy=strategy).inc(n)


def incr_saved(entity: str, n: int = 1):
    if n <= 0:
        return
    records_saved.labels(entity=entity).inc(n)


def incr_failed(kind: str, n: int = 1):
    if n <= 0:
        return
    targets_failed.labels(kind=kind).inc(n)


def _collect(counter: Counter) -> Dict[str, float]:
    values = {}
    for metric in counter.collect():
        for sample in metric.samples:
            if not sample.name.endswith('_total'):
                continue
            key = ','.join(str(v) for v in sample.labels.values()) or 'total'
            values[key] = sample.value
    return values


def get_metrics() -> dict:
    """Snapshot of every counter, keyed by label values."""
    return {
        'pages_fetched': _collect(pages_fetched),
        'fetch_blocked': _collect(fetch_blocked),
        'records_extracted': _collect(records_extracted),
        'records_saved': _collect(records_saved),
        'targets_failed': _collect(targets_failed),
    }
