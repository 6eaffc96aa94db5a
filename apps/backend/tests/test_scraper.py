"""
Unit tests for the scraper service (pagination, jobs scraping, run statistics).
"""

import pytest

from core.models import CompanyRecord, JobRecord
from core.net import HttpStatusError, TransportError
from crawler.orchestrator import ErrorKind
from crawler.scraper import ScrapeStats, StartupScraper
from conftest import BASE_URL, FakeFetchClient, jobs_html, listing_html


def listing_url(page):
    return f"{BASE_URL}/startups?page={page}"


@pytest.fixture
def make_scraper(settings):
    def _make(fetch_client):
        return StartupScraper(settings, fetch_client=fetch_client)
    return _make


class TestScrapeCompanies:

    def test_stops_after_first_empty_page(self, make_scraper):
        """Pages are requested in windows of `concurrency`; no window starts after an empty page."""
        fetch_client = FakeFetchClient(empty=[listing_url(n) for n in range(5, 11)])
        scraper = make_scraper(fetch_client)

        result = scraper.scrape_companies(max_pages=10)

        assert sorted(r.name for r in result.records) == ["Company1", "Company2", "Company3", "Company4"]
        assert len(fetch_client.fetched) == 6
        assert listing_url(7) not in fetch_client.fetched

    def test_respects_max_pages(self, make_scraper):
        fetch_client = FakeFetchClient()
        scraper = make_scraper(fetch_client)

        result = scraper.scrape_companies(max_pages=4)

        assert len(result.records) == 4
        assert len(fetch_client.fetched) == 4
        assert result.errors == []

    def test_duplicate_companies_removed(self, make_scraper):
        pages = {
            listing_url(1): listing_html("Acme", "Beta"),
            listing_url(2): listing_html("Beta", "Gamma"),
        }
        scraper = make_scraper(FakeFetchClient(pages=pages))

        result = scraper.scrape_companies(max_pages=2)

        assert sorted(r.name for r in result.records) == ["Acme", "Beta", "Gamma"]

    def test_blocked_page_stops_pagination(self, make_scraper):
        url = listing_url(2)
        fetch_client = FakeFetchClient(failures={url: HttpStatusError(url, 403)})
        scraper = make_scraper(fetch_client)

        result = scraper.scrape_companies(max_pages=9)

        assert len(fetch_client.fetched) == 3
        assert len(result.blocked_errors) == 1

    @pytest.mark.parametrize("error", [
        TransportError(listing_url(2), "connection reset"),
        HttpStatusError(listing_url(2), 503),
        HttpStatusError(listing_url(2), 404),
    ])
    def test_failed_page_does_not_stop_pagination(self, make_scraper, error):
        fetch_client = FakeFetchClient(failures={listing_url(2): error})
        scraper = make_scraper(fetch_client)

        result = scraper.scrape_companies(max_pages=9)

        assert len(fetch_client.fetched) == 9
        assert len(result.records) == 8
        assert [e.target.page for e in result.errors] == [2]
        assert scraper.stats.failed_extractions == 1

    def test_zero_pages_requests_nothing(self, make_scraper):
        fetch_client = FakeFetchClient()
        scraper = make_scraper(fetch_client)

        result = scraper.scrape_companies(max_pages=0)

        assert fetch_client.fetched == []
        assert result.records == []


class TestScrapeJobs:

    def test_company_jobs_by_slug(self, make_scraper):
        pages = {f"{BASE_URL}/company/acme/jobs": jobs_html("Engineer", "Designer")}
        scraper = make_scraper(FakeFetchClient(pages=pages))

        result = scraper.scrape_company_jobs("acme", name="Acme")

        assert [r.title for r in result.records] == ["Engineer", "Designer"]
        assert all(isinstance(r, JobRecord) for r in result.records)
        assert all(r.company_name == "Acme" for r in result.records)
        assert result.records[0].apply_url == f"{BASE_URL}/company/acme/jobs/1"

    def test_jobs_for_companies_carry_context(self, make_scraper):
        companies = [
            CompanyRecord(name="Acme", slug="acme", funding="Seed",
                          jobs_url=f"{BASE_URL}/company/acme/jobs"),
            CompanyRecord(name="No Slug"),
        ]
        pages = {f"{BASE_URL}/company/acme/jobs": jobs_html("Engineer")}
        fetch_client = FakeFetchClient(pages=pages)
        scraper = make_scraper(fetch_client)

        result = scraper.scrape_jobs_for_companies(companies)

        assert fetch_client.fetched == [f"{BASE_URL}/company/acme/jobs"]
        assert result.records[0].company_funding == "Seed"

    def test_jobs_from_urls_reports_invalid_urls(self, make_scraper):
        good = f"{BASE_URL}/company/acme/jobs"
        pages = {good: jobs_html("Engineer")}
        fetch_client = FakeFetchClient(pages=pages)
        scraper = make_scraper(fetch_client)

        result = scraper.scrape_jobs_from_urls([good, "https://example.com/not-a-company"])

        assert len(result.records) == 1
        assert result.total_targets == 2
        assert [e.kind for e in result.errors] == [ErrorKind.INVALID_TARGET]
        assert fetch_client.fetched == [good]

    def test_slug_stands_in_for_missing_company_name(self, make_scraper):
        url = f"{BASE_URL}/company/acme/jobs"
        scraper = make_scraper(FakeFetchClient(pages={url: jobs_html("Engineer")}))

        by_slug = scraper.scrape_company_jobs("acme")
        from_urls = scraper.scrape_jobs_from_urls([url])

        assert by_slug.records[0].company_name == "acme"
        assert from_urls.records[0].company_name == "acme"

    def test_run_full(self, make_scraper):
        pages = {
            listing_url(1): listing_html("Acme", "Beta"),
            f"{BASE_URL}/company/acme/jobs": jobs_html("Engineer"),
            f"{BASE_URL}/company/beta/jobs": jobs_html("Analyst", "Support"),
        }
        scraper = make_scraper(FakeFetchClient(pages=pages))

        companies, jobs = scraper.run_full(max_pages=1)

        assert len(companies.records) == 2
        assert sorted(r.title for r in jobs.records) == ["Analyst", "Engineer", "Support"]
        assert all(r.quality is not None for r in jobs.records)


class TestScrapeStats:

    def test_stats_accumulate_across_batches(self, make_scraper):
        fetch_client = FakeFetchClient(empty=[listing_url(3)])
        scraper = make_scraper(fetch_client)

        scraper.scrape_companies(max_pages=3)
        scraper.scrape_company_jobs("missing")

        stats = scraper.stats.to_dict()
        assert stats == {
            'total_requests': 4,
            'successful_extractions': 2,
            'failed_extractions': 2,
            'success_rate': 50.0,
        }

    def test_empty_stats(self):
        assert ScrapeStats().success_rate == 0.0

    def test_close_closes_fetch_client(self, make_scraper):
        fetch_client = FakeFetchClient()
        with make_scraper(fetch_client):
            pass
        assert fetch_client.closed
