"""
Startup directory scraper - builds target batches and runs them.

Listing pages are requested in windows of `concurrency` pages and pagination
stops at the first page that yields nothing. Jobs pages are requested per
company, either from freshly scraped companies or from stored jobs URLs.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from core.config import ScraperSettings
from core.data_quality import DataQualityScorer
from core.models import CompanyContext, CompanyRecord, Record, Target, TargetKind
from core.net import FetchClient
from core.rate_gate import RateGate
from pipeline.extractor import build_engine
from pipeline.records import company_slug_from_url
from .orchestrator import BatchResult, ErrorKind, FetchOrchestrator, TargetError

logger = logging.getLogger(__name__)


@dataclass
class ScrapeStats:
    """Running totals across every batch this scraper has run."""
    total_requests: int = 0
    successful_extractions: int = 0
    failed_extractions: int = 0

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return round(self.successful_extractions * 100.0 / self.total_requests, 2)

    def record_batch(self, result: BatchResult):
        not_attempted = sum(
            1 for e in result.errors
            if e.kind in (ErrorKind.BATCH_TIMEOUT, ErrorKind.INVALID_TARGET)
        )
        self.total_requests += result.total_targets - not_attempted
        self.successful_extractions += result.succeeded_targets
        self.failed_extractions += len(result.errors) - not_attempted

    def to_dict(self) -> dict:
        return {
            'total_requests': self.total_requests,
            'successful_extractions': self.successful_extractions,
            'failed_extractions': self.failed_extractions,
            'success_rate': self.success_rate,
        }


def _dedupe(records: Iterable[Record]) -> List[Record]:
    """Drop repeated companies (same jobs URL or name) and jobs (same id or URL)."""
    seen = set()
    unique = []
    for record in records:
        if isinstance(record, CompanyRecord):
            key = ('company', record.jobs_url or record.name.lower())
        else:
            key = ('job', record.company_slug, record.id or record.apply_url or record.title)
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


class StartupScraper:
    """Entry point used by the CLI for every scrape command."""

    def __init__(self, settings: ScraperSettings, fetch_client: Optional[FetchClient] = None,
                 orchestrator: Optional[FetchOrchestrator] = None):
        self.settings = settings
        self.fetch_client = fetch_client or FetchClient(settings)
        self.orchestrator = orchestrator or FetchOrchestrator(
            RateGate(settings.rate_limit),
            self.fetch_client,
            build_engine(settings),
            DataQualityScorer(),
            concurrency=settings.concurrency,
            batch_timeout=settings.batch_timeout,
        )
        self.stats = ScrapeStats()

    def close(self):
        self.fetch_client.close()

    def __enter__(self) -> "StartupScraper":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _run(self, targets: Sequence[Target]) -> BatchResult:
        result = self.orchestrator.run(targets)
        self.stats.record_batch(result)
        return result

    def scrape_companies(self, max_pages: Optional[int] = None) -> BatchResult:
        """
        Scrape the startup listing from page 1.

        Args:
            max_pages: Last page to request (default: settings.max_pages)

        Returns:
            Merged BatchResult of every window that was requested
        """
        if max_pages is None:
            max_pages = self.settings.max_pages
        window = max(1, self.orchestrator.concurrency)
        result = BatchResult()

        first = 1
        while first <= max_pages:
            last = min(first + window - 1, max_pages)
            targets = [
                Target(url=self.settings.listing_url(n), kind=TargetKind.COMPANIES, page=n)
                for n in range(first, last + 1)
            ]
            batch = self._run(targets)
            result = result.merge(batch)

            if batch.timed_out:
                logger.warning(f"Listing batch for pages {first}-{last} timed out, stopping pagination")
                break
            if batch.empty_targets:
                stop_page = min(t.page for t in batch.empty_targets)
                logger.info(f"Page {stop_page} yielded no companies, stopping pagination")
                break
            if batch.blocked_errors:
                stop_page = min(e.target.page for e in batch.blocked_errors)
                logger.warning(
                    f"Page {stop_page} blocked with HTTP {batch.blocked_errors[0].status_code}, "
                    f"stopping pagination"
                )
                break
            for error in batch.errors:
                logger.warning(f"Page {error.target.page} failed ({error.kind}), continuing")
            first = last + 1

        result.records = _dedupe(result.records)
        logger.info(f"Scraped {len(result.records)} companies from the listing")
        return result

    def scrape_company_jobs(self, slug: str, name: Optional[str] = None) -> BatchResult:
        """Scrape the jobs page of a single company. The slug stands in for a missing name."""
        context = CompanyContext(slug=slug, name=name or slug)
        target = Target(url=self.settings.jobs_url(slug), kind=TargetKind.JOBS, context=context)
        return self._run([target])

    def scrape_jobs_for_companies(self, companies: Sequence[CompanyRecord]) -> BatchResult:
        """Scrape jobs pages for companies taken from a listing scrape."""
        targets = []
        for company in companies:
            if not company.slug:
                logger.debug(f"Skipping {company.name}: no slug")
                continue
            targets.append(Target(
                url=company.jobs_url or self.settings.jobs_url(company.slug),
                kind=TargetKind.JOBS,
                context=CompanyContext.from_company(company),
            ))
        result = self._run(targets)
        result.records = _dedupe(result.records)
        return result

    def scrape_jobs_from_urls(self, urls: Sequence[str]) -> BatchResult:
        """Scrape jobs pages for stored company URLs; unparseable URLs are reported, not fetched."""
        targets = []
        invalid = []
        for url in urls:
            slug = company_slug_from_url(url)
            target = Target(url=url, kind=TargetKind.JOBS,
                            context=CompanyContext(slug=slug, name=slug) if slug else None)
            if slug is None:
                logger.warning(f"Could not extract company slug from URL: {url}")
                invalid.append(TargetError(target, ErrorKind.INVALID_TARGET, "No company slug in URL"))
                continue
            targets.append(target)

        result = self.orchestrator.run(targets)
        result = BatchResult(
            records=_dedupe(result.records),
            errors=invalid + result.errors,
            total_targets=result.total_targets + len(invalid),
            timed_out=result.timed_out,
            duration_ms=result.duration_ms,
        )
        self.stats.record_batch(result)
        return result

    def run_full(self, max_pages: Optional[int] = None) -> Tuple[BatchResult, BatchResult]:
        """Listing scrape followed by a jobs scrape of every company found."""
        companies = self.scrape_companies(max_pages)
        company_records = [r for r in companies.records if isinstance(r, CompanyRecord)]
        logger.info(f"Scraping jobs for {len(company_records)} companies")
        jobs = self.scrape_jobs_for_companies(company_records)
        return companies, jobs
