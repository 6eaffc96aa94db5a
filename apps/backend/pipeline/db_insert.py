"""
Database insertion for scraped records.

Companies are upserted into `job_source_urls` keyed on their jobs URL; jobs are
upserted into `ats_job_postings` keyed on (ats_job_id, ats_type). Each call
commits once per table; a database error rolls the batch back and is reported
as zero saved rows.
"""

import logging
from typing import Dict, List, Optional, Protocol, Sequence

import psycopg2
from psycopg2.extras import Json, RealDictCursor, execute_batch
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

import metrics
from core.models import SOURCE_TYPE, CompanyRecord, JobRecord, Record

logger = logging.getLogger(__name__)

DEFAULT_COMPANIES_TABLE = 'job_source_urls'
DEFAULT_JOBS_TABLE = 'ats_job_postings'
CONNECT_TIMEOUT = 10

UPSERT_COMPANY_SQL = """
    INSERT INTO {table} (
        url, source_type, company_name, company_identifier, status,
        last_scraped, total_jobs_found, metadata, created_at, updated_at
    ) VALUES (
        %(url)s, %(source_type)s, %(company_name)s, %(company_identifier)s, 'active',
        %(last_scraped)s, %(total_jobs_found)s, %(metadata)s, NOW(), NOW()
    )
    ON CONFLICT (url) DO UPDATE SET
        company_name = EXCLUDED.company_name,
        total_jobs_found = EXCLUDED.total_jobs_found,
        metadata = EXCLUDED.metadata,
        updated_at = NOW()
"""

UPSERT_JOB_SQL = """
    INSERT INTO {table} (
        ats_job_id, ats_type, title, description, location, job_type,
        company_name, company_identifier, apply_url,
        salary_min, salary_max, salary_currency, skills, experience_level,
        remote_ok, posted_date, extraction_timestamp,
        extraction_success_score, quality_grade, source_url, native_data,
        created_at, updated_at
    ) VALUES (
        %(ats_job_id)s, %(ats_type)s, %(title)s, %(description)s, %(location)s, %(job_type)s,
        %(company_name)s, %(company_identifier)s, %(apply_url)s,
        %(salary_min)s, %(salary_max)s, %(salary_currency)s, %(skills)s, %(experience_level)s,
        %(remote_ok)s, %(posted_date)s, %(extraction_timestamp)s,
        %(extraction_success_score)s, %(quality_grade)s, %(source_url)s, %(native_data)s,
        NOW(), NOW()
    )
    ON CONFLICT (ats_job_id, ats_type) DO UPDATE SET
        title = EXCLUDED.title,
        description = EXCLUDED.description,
        location = EXCLUDED.location,
        salary_min = EXCLUDED.salary_min,
        salary_max = EXCLUDED.salary_max,
        extraction_success_score = EXCLUDED.extraction_success_score,
        quality_grade = EXCLUDED.quality_grade,
        native_data = EXCLUDED.native_data,
        updated_at = NOW()
"""


class PersistenceGateway(Protocol):
    """Where scored records go. May save fewer records than it is given."""

    def save_batch(self, records: Sequence[Record]) -> int:
        ...


def _company_row(company: CompanyRecord) -> Dict:
    metadata = {
        'slug': company.slug,
        'logo': company.logo,
        'headline': company.headline,
        'location': company.location,
        'company_size': company.company_size,
        'funding': company.funding,
        'website': company.website,
        'industries': company.industries,
        'company_url': company.company_url,
        'quality_score': company.quality.score if company.quality else None,
        'quality_grade': company.quality.grade if company.quality else None,
    }
    return {
        'url': company.jobs_url,
        'source_type': SOURCE_TYPE,
        'company_name': company.name,
        'company_identifier': company.slug,
        'last_scraped': company.extraction_timestamp,
        'total_jobs_found': company.total_jobs or 0,
        'metadata': Json(metadata),
    }


def _job_row(job: JobRecord) -> Dict:
    return {
        'ats_job_id': job.id,
        'ats_type': job.source_type,
        'title': job.title,
        'description': job.description,
        'location': job.location,
        'job_type': job.job_type,
        'company_name': job.company_name,
        'company_identifier': job.company_slug,
        'apply_url': job.apply_url,
        'salary_min': job.salary_min,
        'salary_max': job.salary_max,
        'salary_currency': job.salary_currency,
        'skills': Json(job.skills),
        'experience_level': job.experience_level,
        'remote_ok': job.remote_ok,
        'posted_date': job.posted_date,
        'extraction_timestamp': job.extraction_timestamp,
        'extraction_success_score': job.quality.score if job.quality else None,
        'quality_grade': job.quality.grade if job.quality else None,
        'source_url': job.source_url,
        'native_data': Json(job.native_data),
    }


class PostgresGateway:
    """PostgreSQL persistence for companies and jobs."""

    def __init__(self, db_url: str, companies_table: Optional[str] = None,
                 jobs_table: Optional[str] = None):
        """
        Args:
            db_url: PostgreSQL connection string
            companies_table: Table for companies (default: job_source_urls)
            jobs_table: Table for jobs (default: ats_job_postings)
        """
        self.db_url = db_url
        self.companies_table = companies_table or DEFAULT_COMPANIES_TABLE
        self.jobs_table = jobs_table or DEFAULT_JOBS_TABLE

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception_type(psycopg2.OperationalError),
        reraise=True,
    )
    def _get_db_conn(self):
        """Get database connection (retried on connection-level failures)."""
        return psycopg2.connect(self.db_url, connect_timeout=CONNECT_TIMEOUT)

    def save_batch(self, records: Sequence[Record]) -> int:
        """
        Save a mixed batch of records.

        Returns:
            Number of rows written
        """
        companies = [r for r in records if isinstance(r, CompanyRecord)]
        jobs = [r for r in records if isinstance(r, JobRecord)]
        saved = 0
        if companies:
            saved += self.save_companies(companies)
        if jobs:
            saved += self.save_jobs(jobs)
        return saved

    def save_companies(self, companies: Sequence[CompanyRecord]) -> int:
        rows = [_company_row(c) for c in companies if c.jobs_url]
        skipped = len(companies) - len(rows)
        if skipped:
            logger.warning(f"[db] Skipping {skipped} companies without a jobs URL")
        saved = self._write(UPSERT_COMPANY_SQL.format(table=self.companies_table), rows, 'companies')
        metrics.incr_saved('company', saved)
        return saved

    def save_jobs(self, jobs: Sequence[JobRecord]) -> int:
        rows = [_job_row(j) for j in jobs if j.id]
        skipped = len(jobs) - len(rows)
        if skipped:
            logger.warning(f"[db] Skipping {skipped} jobs without a source job id")
        saved = self._write(UPSERT_JOB_SQL.format(table=self.jobs_table), rows, 'jobs')
        metrics.incr_saved('job', saved)
        return saved

    def _write(self, sql: str, rows: List[Dict], label: str) -> int:
        if not rows:
            return 0
        try:
            conn = self._get_db_conn()
        except psycopg2.Error as e:
            logger.error(f"[db] Could not connect to save {label}: {e}")
            return 0

        try:
            with conn.cursor() as cur:
                execute_batch(cur, sql, rows, page_size=100)
            conn.commit()
            logger.info(f"[db] Saved {len(rows)} {label}")
            return len(rows)
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"[db] Error saving {label}, batch rolled back: {e}")
            return 0
        finally:
            conn.close()

    def test_connection(self) -> bool:
        try:
            conn = self._get_db_conn()
        except psycopg2.Error as e:
            logger.error(f"[db] Connection test failed: {e}")
            return False
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
            return True
        except psycopg2.Error as e:
            logger.error(f"[db] Connection test failed: {e}")
            return False
        finally:
            conn.close()

    def get_stats(self) -> Dict:
        """
        Returns:
            Dict with companies, jobs, average_quality_score
        """
        conn = self._get_db_conn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"SELECT COUNT(*) AS count FROM {self.companies_table} WHERE source_type = %s",
                    (SOURCE_TYPE,),
                )
                companies = cur.fetchone()['count']

                cur.execute(
                    f"""
                    SELECT COUNT(*) AS count, AVG(extraction_success_score) AS average_score
                    FROM {self.jobs_table}
                    WHERE ats_type = %s
                    """,
                    (SOURCE_TYPE,),
                )
                row = cur.fetchone()
            average = row['average_score']
            return {
                'companies': companies,
                'jobs': row['count'],
                'average_quality_score': round(float(average), 2) if average is not None else None,
            }
        finally:
            conn.close()

    def get_company_jobs_urls(self, limit: int = 50) -> List[str]:
        """Stored company jobs URLs, companies with the most jobs first."""
        conn = self._get_db_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT url FROM {self.companies_table}
                    WHERE source_type = %s AND status = 'active'
                    ORDER BY total_jobs_found DESC NULLS LAST, updated_at DESC
                    LIMIT %s
                    """,
                    (SOURCE_TYPE, limit),
                )
                return [row[0] for row in cur.fetchall()]
        finally:
            conn.close()
