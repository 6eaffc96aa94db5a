"""
Command line entry point for the startup directory scraper.

Examples:
    wellfound-scraper --companies 5
    wellfound-scraper --jobs acme-robotics
    wellfound-scraper --jobs-from-db 100
    wellfound-scraper --full
    wellfound-scraper --stats
"""

import sys
import argparse
import logging
from typing import List, Optional

import psycopg2

import metrics
from core.config import ScraperSettings
from core.models import CompanyRecord, JobRecord
from crawler.orchestrator import BatchResult
from crawler.scraper import StartupScraper
from pipeline import __version__
from pipeline.db_insert import PostgresGateway

logger = logging.getLogger(__name__)

DEFAULT_FULL_PAGES = 20
DEFAULT_URL_LIMIT = 50


def build_parser(settings: ScraperSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='wellfound-scraper',
        description='Scrape startup companies and their job postings into PostgreSQL',
    )
    command = parser.add_mutually_exclusive_group(required=True)
    command.add_argument(
        '--companies', nargs='?', type=int, const=settings.max_pages, metavar='PAGES',
        help=f'Scrape the startup listing (default: {settings.max_pages} pages)',
    )
    command.add_argument('--jobs', metavar='SLUG', help='Scrape jobs for one company slug')
    command.add_argument(
        '--jobs-from-db', nargs='?', type=int, const=DEFAULT_URL_LIMIT, metavar='LIMIT',
        help=f'Scrape jobs for companies already in the database (default: {DEFAULT_URL_LIMIT})',
    )
    command.add_argument(
        '--full', nargs='?', type=int, const=DEFAULT_FULL_PAGES, metavar='PAGES',
        help=f'Scrape companies, then their jobs (default: {DEFAULT_FULL_PAGES} pages)',
    )
    command.add_argument('--stats', action='store_true', help='Show database statistics')
    command.add_argument('--test-db', action='store_true', help='Test the database connection')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def _average_score(records) -> Optional[float]:
    scores = [r.quality.score for r in records if r.quality is not None]
    if not scores:
        return None
    return sum(scores) / len(scores)


def _print_result(label: str, result: BatchResult, saved: int):
    print(f"✅ {label}: found {len(result.records)}, saved {saved}")
    print(f"   Success rate: {result.success_rate:.1f}% "
          f"({result.succeeded_targets}/{result.total_targets} pages)")
    print(f"   Duration: {result.duration_ms / 1000:.1f}s")
    average = _average_score(result.records)
    if average is not None:
        print(f"   Average quality score: {average:.1f}")
    if result.timed_out:
        print("⚠️  Batch timed out, results are partial")
    if result.blocked_errors:
        print(f"⚠️  {len(result.blocked_errors)} requests were blocked by the site")


def cmd_companies(scraper: StartupScraper, gateway: PostgresGateway, pages: int) -> int:
    print(f"🏢 Scraping companies ({pages} pages)...")
    result = scraper.scrape_companies(pages)
    saved = gateway.save_batch(result.records)
    _print_result('Companies', result, saved)
    return 0


def cmd_jobs(scraper: StartupScraper, gateway: PostgresGateway, slug: str) -> int:
    print(f"💼 Scraping jobs for {slug}...")
    result = scraper.scrape_company_jobs(slug)
    saved = gateway.save_batch(result.records)
    _print_result(f'Jobs for {slug}', result, saved)
    return 0


def cmd_jobs_from_db(scraper: StartupScraper, gateway: PostgresGateway, limit: int) -> int:
    try:
        urls = gateway.get_company_jobs_urls(limit)
    except psycopg2.Error as e:
        print(f"❌ Could not read stored company URLs: {e}")
        return 1
    if not urls:
        print("❌ No stored company URLs found. Run --companies first.")
        return 1
    print(f"💼 Scraping jobs for {len(urls)} stored companies...")
    result = scraper.scrape_jobs_from_urls(urls)
    saved = gateway.save_batch(result.records)
    _print_result('Jobs', result, saved)
    return 0


def cmd_full(scraper: StartupScraper, gateway: PostgresGateway, pages: int) -> int:
    print(f"🚀 Full scrape ({pages} listing pages, then jobs)...")
    companies, jobs = scraper.run_full(pages)
    saved_companies = gateway.save_batch(
        [r for r in companies.records if isinstance(r, CompanyRecord)]
    )
    _print_result('Companies', companies, saved_companies)
    saved_jobs = gateway.save_batch([r for r in jobs.records if isinstance(r, JobRecord)])
    _print_result('Jobs', jobs, saved_jobs)

    stats = scraper.stats
    print("=" * 60)
    print(f"Requests: {stats.total_requests}, "
          f"successful: {stats.successful_extractions}, "
          f"failed: {stats.failed_extractions}, "
          f"success rate: {stats.success_rate:.1f}%")
    return 0


def cmd_stats(gateway: PostgresGateway) -> int:
    try:
        stats = gateway.get_stats()
    except psycopg2.Error as e:
        print(f"❌ Could not read statistics: {e}")
        return 1
    print("📊 Database statistics")
    print(f"   Companies: {stats['companies']}")
    print(f"   Jobs: {stats['jobs']}")
    average = stats['average_quality_score']
    print(f"   Average quality score: {average if average is not None else 'n/a'}")
    return 0


def cmd_test_db(gateway: PostgresGateway) -> int:
    if gateway.test_connection():
        print("✅ Database connection OK")
        return 0
    print("❌ Database connection failed")
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    settings = ScraperSettings.from_env()
    args = build_parser(settings).parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    gateway = PostgresGateway(settings.database_url)

    if args.test_db:
        return cmd_test_db(gateway)
    if args.stats:
        return cmd_stats(gateway)

    for value, flag in ((args.companies, '--companies'), (args.jobs_from_db, '--jobs-from-db'),
                        (args.full, '--full')):
        if value is not None and value <= 0:
            print(f"❌ {flag} needs a positive number")
            return 2

    with StartupScraper(settings) as scraper:
        if args.companies is not None:
            code = cmd_companies(scraper, gateway, args.companies)
        elif args.jobs is not None:
            code = cmd_jobs(scraper, gateway, args.jobs)
        elif args.jobs_from_db is not None:
            code = cmd_jobs_from_db(scraper, gateway, args.jobs_from_db)
        else:
            code = cmd_full(scraper, gateway, args.full)

    logger.debug(f"Metrics: {metrics.get_metrics()}")
    return code


if __name__ == '__main__':
    sys.exit(main())
