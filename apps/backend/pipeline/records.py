"""
Entity mapping: source elements -> CompanyRecord / JobRecord.

JSON elements are mapped through a declarative key map per entity; the first
source key that yields a value wins for each record field. DOM elements are
mapped through a small set of sub-selectors. Anything the maps do not name
stays in `native_data` and never becomes a record field.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from bs4 import Tag
from dateutil import parser as date_parser
from pydantic import ValidationError

from core.models import CompanyContext, CompanyRecord, JobRecord, TargetKind

logger = logging.getLogger(__name__)


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (list, tuple)):
        parts = [p for p in (_text(v) for v in value) if p]
        return ", ".join(parts) or None
    if isinstance(value, dict):
        return _text(value.get("name") or value.get("displayName") or value.get("label"))
    text = str(value).strip()
    return text or None


def _int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    digits = "".join(ch for ch in str(value) if ch.isdigit() or ch == ".")
    if not digits:
        return None
    try:
        return int(float(digits))
    except ValueError:
        return None


def _bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in ("true", "yes", "1"):
        return True
    if text in ("false", "no", "0"):
        return False
    return None


def _text_list(value: Any) -> List[str]:
    """Lists of strings or of {name: ...} objects, or a comma separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if not isinstance(value, (list, tuple)):
        value = [value]
    items = []
    for item in value:
        text = _text(item)
        if text and text not in items:
            items.append(text)
    return items


def _datetime(value: Any) -> Optional[datetime]:
    """ISO strings, loose date strings, or epoch seconds / milliseconds."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 10_000_000_000 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        return date_parser.parse(str(value))
    except (ValueError, OverflowError):
        return None


# source key -> (record field, coercer); order matters when several keys map
# to the same field
COMPANY_KEY_MAP: Tuple[Tuple[str, str, Callable], ...] = (
    ("id", "id", _text),
    ("name", "name", _text),
    ("slug", "slug", _text),
    ("logo", "logo", _text),
    ("logoUrl", "logo", _text),
    ("headline", "headline", _text),
    ("highConcept", "headline", _text),
    ("description", "description", _text),
    ("productDescription", "description", _text),
    ("location", "location", _text),
    ("locationNames", "location", _text),
    ("companySize", "company_size", _text),
    ("companyType", "company_type", _text),
    ("funding", "funding", _text),
    ("fundingStage", "funding", _text),
    ("website", "website", _text),
    ("companyUrl", "website", _text),
    ("twitter", "twitter", _text),
    ("twitterUrl", "twitter", _text),
    ("linkedin", "linkedin", _text),
    ("linkedInUrl", "linkedin", _text),
    ("jobsCount", "total_jobs", _int),
    ("badges", "badges", _text_list),
    ("foundedYear", "founded_year", _int),
    ("industries", "industries", _text_list),
    ("markets", "industries", _text_list),
)

JOB_KEY_MAP: Tuple[Tuple[str, str, Callable], ...] = (
    ("id", "id", _text),
    ("title", "title", _text),
    ("description", "description", _text),
    ("location", "location", _text),
    ("locationNames", "location", _text),
    ("jobType", "job_type", _text),
    ("applyUrl", "apply_url", _text),
    ("salaryMin", "salary_min", _int),
    ("salaryMax", "salary_max", _int),
    ("salaryCurrency", "salary_currency", _text),
    ("currency", "salary_currency", _text),
    ("compensation", "salary_text", _text),
    ("salary", "salary_text", _text),
    ("skills", "skills", _text_list),
    ("experienceLevel", "experience_level", _text),
    ("requirements", "requirements", _text_list),
    ("postedAt", "posted_date", _datetime),
    ("postedDate", "posted_date", _datetime),
    ("liveStartAt", "posted_date", _datetime),
    ("validUntil", "valid_until", _datetime),
    ("remote", "remote_ok", _bool),
    ("remoteOk", "remote_ok", _bool),
    ("visaSponsorship", "visa_sponsorship", _bool),
    ("benefits", "benefits", _text_list),
    ("equity", "equity_offered", _bool),
    ("equityOffered", "equity_offered", _bool),
)


def map_fields(node: Dict[str, Any], key_map) -> Dict[str, Any]:
    """Apply a key map to one JSON element. Empty values are left unset."""
    fields: Dict[str, Any] = {}
    for source_key, field_name, coerce in key_map:
        if field_name in fields or source_key not in node:
            continue
        value = coerce(node[source_key])
        if value is None or value == []:
            continue
        fields[field_name] = value
    return fields


def company_slug_from_url(url: str) -> Optional[str]:
    """'https://wellfound.com/company/acme/jobs' -> 'acme'."""
    if not url or "/company/" not in url:
        return None
    slug = url.split("/company/", 1)[1].split("/")[0].split("?")[0].split("#")[0]
    return slug or None


def _build_company(fields: Dict[str, Any], source_url: str, base_url: str,
                   native: Dict[str, Any]) -> Optional[CompanyRecord]:
    if not fields.get("name"):
        return None
    slug = fields.get("slug")
    if slug:
        fields.setdefault("company_url", f"{base_url}/company/{slug}")
        fields.setdefault("jobs_url", f"{base_url}/company/{slug}/jobs")
    try:
        return CompanyRecord(source_url=source_url, native_data=native, **fields)
    except ValidationError as e:
        logger.debug(f"[extract] Dropping company {fields.get('name')!r}: {e}")
        return None


def _build_job(fields: Dict[str, Any], source_url: str, company: Optional[CompanyContext],
               base_url: str, native: Dict[str, Any]) -> Optional[JobRecord]:
    if not fields.get("title"):
        return None

    if company is not None:
        fields.setdefault("company_slug", company.slug)
        fields.setdefault("company_id", company.id)
        fields.setdefault("company_name", company.name)
        fields.setdefault("company_logo", company.logo)
        fields.setdefault("company_size", company.company_size)
        fields.setdefault("company_funding", company.funding)
        fields.setdefault("company_industries", list(company.industries))

    slug = fields.get("company_slug") or company_slug_from_url(source_url)
    if slug:
        fields["company_slug"] = slug
        if fields.get("id"):
            fields.setdefault("apply_url", f"{base_url}/company/{slug}/jobs/{fields['id']}")

    location = fields.get("location")
    if fields.get("remote_ok") is None and location:
        fields["remote_ok"] = "remote" in location.lower()

    fields = {k: v for k, v in fields.items() if v is not None}
    try:
        return JobRecord(source_url=source_url, native_data=native, **fields)
    except ValidationError as e:
        logger.debug(f"[extract] Dropping job {fields.get('title')!r}: {e}")
        return None


def company_from_json(node: Dict[str, Any], source_url: str,
                      company: Optional[CompanyContext], base_url: str) -> Optional[CompanyRecord]:
    return _build_company(map_fields(node, COMPANY_KEY_MAP), source_url, base_url, dict(node))


def job_from_json(node: Dict[str, Any], source_url: str,
                  company: Optional[CompanyContext], base_url: str) -> Optional[JobRecord]:
    fields = map_fields(node, JOB_KEY_MAP)
    nested = node.get("company") or node.get("startup")
    if company is None and isinstance(nested, dict):
        # Jobs pages sometimes embed the owning company instead of a context
        nested_fields = map_fields(nested, COMPANY_KEY_MAP)
        if nested_fields.get("slug"):
            company = CompanyContext(
                slug=nested_fields["slug"],
                name=nested_fields.get("name"),
                id=nested_fields.get("id"),
                logo=nested_fields.get("logo"),
                company_size=nested_fields.get("company_size"),
                funding=nested_fields.get("funding"),
                industries=tuple(nested_fields.get("industries", ())),
            )
    return _build_job(fields, source_url, company, base_url, dict(node))


# Sub-selectors inside a matched card element
COMPANY_NAME_SELECTOR = 'h2, .company-name, [data-test="company-name"]'
JOB_TITLE_SELECTOR = 'h3, .job-title, [data-test="job-title"]'
LOCATION_SELECTOR = '.location, [data-test="location"]'
HEADLINE_SELECTOR = '.headline, .tagline, [data-test="headline"]'
JOB_TYPE_SELECTOR = '.job-type, [data-test="job-type"]'
SALARY_SELECTOR = '.salary, .compensation, [data-test="compensation"]'


def _select_text(element: Tag, selector: str) -> Optional[str]:
    found = element.select_one(selector)
    if found is None:
        return None
    return _text(found.get_text(" ", strip=True))


def _element_native(element: Tag) -> Dict[str, Any]:
    return {
        "tag": element.name,
        "attrs": {k: (" ".join(v) if isinstance(v, list) else v) for k, v in element.attrs.items()},
        "text": element.get_text(" ", strip=True),
    }


def _element_link(element: Tag, marker: str) -> Optional[str]:
    link = element if element.name == "a" and marker in (element.get("href") or "") else None
    if link is None:
        link = element.select_one(f'a[href*="{marker}"]')
    return link.get("href") if link is not None else None


def company_from_element(element: Tag, source_url: str,
                         company: Optional[CompanyContext], base_url: str) -> Optional[CompanyRecord]:
    fields: Dict[str, Any] = {
        "id": _text(element.get("data-startup-id") or element.get("data-id")),
        "name": _select_text(element, COMPANY_NAME_SELECTOR),
        "location": _select_text(element, LOCATION_SELECTOR),
        "headline": _select_text(element, HEADLINE_SELECTOR),
    }
    href = _element_link(element, "/company/")
    if href:
        fields["slug"] = company_slug_from_url(href)
    logo = element.select_one("img[src]")
    if logo is not None:
        fields["logo"] = logo.get("src")
    fields = {k: v for k, v in fields.items() if v}
    return _build_company(fields, source_url, base_url, _element_native(element))


def job_from_element(element: Tag, source_url: str,
                     company: Optional[CompanyContext], base_url: str) -> Optional[JobRecord]:
    fields: Dict[str, Any] = {
        "id": _text(element.get("data-job-id") or element.get("data-id")),
        "title": _select_text(element, JOB_TITLE_SELECTOR),
        "location": _select_text(element, LOCATION_SELECTOR),
        "job_type": _select_text(element, JOB_TYPE_SELECTOR),
        "salary_text": _select_text(element, SALARY_SELECTOR),
    }
    href = _element_link(element, "/jobs/")
    if href:
        fields["apply_url"] = href if href.startswith("http") else f"{base_url}{href}"
    fields = {k: v for k, v in fields.items() if v}
    return _build_job(fields, source_url, company, base_url, _element_native(element))


JSON_MAPPERS = {
    TargetKind.COMPANIES: company_from_json,
    TargetKind.JOBS: job_from_json,
}

ELEMENT_MAPPERS = {
    TargetKind.COMPANIES: company_from_element,
    TargetKind.JOBS: job_from_element,
}
