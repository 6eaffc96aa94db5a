"""
Data models shared by the fetch, extraction and persistence stages.

Targets and raw pages are plain dataclasses. Extracted records are frozen
pydantic models: attaching a quality score produces a new record.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

SOURCE_TYPE = "wellfound"


class TargetKind:
    """Kinds of page a target points at."""
    COMPANIES = "companies"  # startup directory listing page
    JOBS = "jobs"  # a company's jobs page

    ALL = (COMPANIES, JOBS)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QualityScore(BaseModel):
    """Completeness score (0-100, two decimals) and its letter grade."""
    model_config = ConfigDict(frozen=True)

    score: float
    grade: str


class CompanyRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity: ClassVar[str] = "company"

    id: Optional[str] = None
    name: str
    slug: Optional[str] = None
    logo: Optional[str] = None
    headline: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    company_size: Optional[str] = None
    company_type: Optional[str] = None
    funding: Optional[str] = None
    website: Optional[str] = None
    twitter: Optional[str] = None
    linkedin: Optional[str] = None
    total_jobs: Optional[int] = None
    badges: List[str] = Field(default_factory=list)
    founded_year: Optional[int] = None
    industries: List[str] = Field(default_factory=list)
    company_url: Optional[str] = None
    jobs_url: Optional[str] = None

    source_url: Optional[str] = None
    extraction_timestamp: datetime = Field(default_factory=_utcnow)
    native_data: Dict[str, Any] = Field(default_factory=dict)
    quality: Optional[QualityScore] = None

    @property
    def primary_field(self) -> str:
        return self.name

    def with_quality(self, quality: QualityScore) -> "CompanyRecord":
        return self.model_copy(update={"quality": quality})


class JobRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity: ClassVar[str] = "job"

    id: Optional[str] = None
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    job_type: Optional[str] = None
    apply_url: Optional[str] = None

    company_id: Optional[str] = None
    company_name: Optional[str] = None
    company_slug: Optional[str] = None
    company_logo: Optional[str] = None
    company_size: Optional[str] = None
    company_funding: Optional[str] = None
    company_industries: List[str] = Field(default_factory=list)

    salary_min: Optional[int] = None
    salary_max: Optional[int] = None
    salary_currency: Optional[str] = None
    salary_text: Optional[str] = None

    skills: List[str] = Field(default_factory=list)
    experience_level: Optional[str] = None
    requirements: List[str] = Field(default_factory=list)
    benefits: List[str] = Field(default_factory=list)
    remote_ok: Optional[bool] = None
    visa_sponsorship: Optional[bool] = None
    equity_offered: Optional[bool] = None
    posted_date: Optional[datetime] = None
    valid_until: Optional[datetime] = None

    source_type: str = SOURCE_TYPE
    source_url: Optional[str] = None
    extraction_timestamp: datetime = Field(default_factory=_utcnow)
    native_data: Dict[str, Any] = Field(default_factory=dict)
    quality: Optional[QualityScore] = None

    @property
    def primary_field(self) -> str:
        return self.title

    @property
    def has_salary(self) -> bool:
        return (
            self.salary_min is not None
            or self.salary_max is not None
            or bool((self.salary_text or "").strip())
        )

    def with_quality(self, quality: QualityScore) -> "JobRecord":
        return self.model_copy(update={"quality": quality})


Record = Union[CompanyRecord, JobRecord]


@dataclass(frozen=True)
class CompanyContext:
    """What is known about a company before its jobs page is fetched."""
    slug: str
    name: Optional[str] = None
    id: Optional[str] = None
    logo: Optional[str] = None
    company_size: Optional[str] = None
    funding: Optional[str] = None
    industries: Tuple[str, ...] = ()

    @classmethod
    def from_company(cls, company: CompanyRecord) -> "CompanyContext":
        return cls(
            slug=company.slug,
            name=company.name,
            id=company.id,
            logo=company.logo,
            company_size=company.company_size,
            funding=company.funding,
            industries=tuple(company.industries),
        )


@dataclass(frozen=True)
class ExtractionContext:
    """Tells the extraction engine what to look for on a page."""
    kind: str
    company: Optional[CompanyContext] = None


@dataclass(frozen=True)
class Target:
    """One page to fetch and extract."""
    url: str
    kind: str
    page: Optional[int] = None
    context: Optional[CompanyContext] = None

    @property
    def extraction_context(self) -> ExtractionContext:
        return ExtractionContext(kind=self.kind, company=self.context)

    def label(self) -> str:
        if self.page is not None:
            return f"{self.kind} page {self.page}"
        if self.context is not None:
            return f"{self.kind} for {self.context.slug}"
        return f"{self.kind} {self.url}"


@dataclass
class RawPage:
    """Fetched page body. Owned by the worker that fetched it."""
    url: str
    html: str
    status_code: int
