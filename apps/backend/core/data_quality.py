"""
Data Quality Scoring Module
Scores company and job records on completeness.

Each entity has a declarative checklist of (field, presence check, weight).
The score is the weighted share of present fields on a 0-100 scale, rounded to
two decimals, and the grade follows fixed thresholds.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from core.models import CompanyRecord, JobRecord, QualityScore, Record

logger = logging.getLogger(__name__)


def _has_text(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def _has_items(value: Any) -> bool:
    return bool(value)


def _is_set(value: Any) -> bool:
    return value is not None


@dataclass(frozen=True)
class ChecklistItem:
    """One completeness check: a named field and how to tell it is present."""
    field: str
    present: Callable[[Record], bool]
    weight: int = 1


def _text_field(name: str) -> ChecklistItem:
    return ChecklistItem(name, lambda record: _has_text(getattr(record, name)))


def _list_field(name: str) -> ChecklistItem:
    return ChecklistItem(name, lambda record: _has_items(getattr(record, name)))


JOB_CHECKLIST: Tuple[ChecklistItem, ...] = (
    _text_field('title'),
    _text_field('description'),
    _text_field('location'),
    _text_field('job_type'),
    _text_field('apply_url'),
    _text_field('company_name'),
    ChecklistItem('salary', lambda job: job.has_salary),
    _list_field('skills'),
    _text_field('experience_level'),
    ChecklistItem('posted_date', lambda job: _is_set(job.posted_date)),
    _text_field('company_size'),
    ChecklistItem('remote_ok', lambda job: _is_set(job.remote_ok)),
    _list_field('benefits'),
    _list_field('company_industries'),
    _text_field('company_funding'),
)

COMPANY_CHECKLIST: Tuple[ChecklistItem, ...] = (
    _text_field('name'),
    _text_field('slug'),
    _text_field('logo'),
    _text_field('headline'),
    _text_field('description'),
    _text_field('location'),
    _text_field('company_size'),
    _text_field('funding'),
    _text_field('website'),
    _list_field('industries'),
)

# Closed lower bounds, checked top-down
GRADE_THRESHOLDS: Tuple[Tuple[float, str], ...] = (
    (90.0, 'A'),
    (80.0, 'B'),
    (70.0, 'C'),
    (60.0, 'D'),
)
LOWEST_GRADE = 'F'


def grade_for(score: float) -> str:
    """Letter grade for a 0-100 score."""
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return LOWEST_GRADE


class DataQualityScorer:
    """
    Scores record completeness.

    Pure and stateless: the same record always gets the same score, and a
    single instance can be shared by every fetch worker.
    """

    def __init__(self, checklists: Optional[Dict[type, Sequence[ChecklistItem]]] = None):
        self.checklists = checklists or {
            JobRecord: JOB_CHECKLIST,
            CompanyRecord: COMPANY_CHECKLIST,
        }

    def checklist_for(self, record: Record) -> Sequence[ChecklistItem]:
        try:
            return self.checklists[type(record)]
        except KeyError:
            raise TypeError(f"No quality checklist for {type(record).__name__}") from None

    def missing_fields(self, record: Record) -> List[str]:
        return [item.field for item in self.checklist_for(record) if not item.present(record)]

    def score(self, record: Record) -> QualityScore:
        """
        Score a single record.

        Returns:
            QualityScore with score in [0, 100] (two decimals) and grade A-F
        """
        checklist = self.checklist_for(record)
        total_weight = sum(item.weight for item in checklist)
        if total_weight <= 0:
            return QualityScore(score=0.0, grade=LOWEST_GRADE)

        filled_weight = sum(item.weight for item in checklist if item.present(record))
        score = round(filled_weight * 100 / total_weight, 2)
        return QualityScore(score=score, grade=grade_for(score))

    def score_record(self, record: Record) -> Record:
        """New record carrying its quality score; the input is untouched."""
        return record.with_quality(self.score(record))

    def score_batch(self, records: Sequence[Record]) -> Dict:
        """
        Score multiple records and return aggregate statistics.

        Returns:
            Dict with:
            - total: int
            - average_score: float
            - grade_distribution: dict
            - low_quality_count: int (grade D or F)
            - common_missing_fields: dict of the ten most frequently missing fields
        """
        grade_counts = {grade: 0 for _, grade in GRADE_THRESHOLDS}
        grade_counts[LOWEST_GRADE] = 0
        missing = Counter()
        scores = []

        for record in records:
            result = self.score(record)
            scores.append(result.score)
            grade_counts[result.grade] += 1
            missing.update(self.missing_fields(record))

        average_score = sum(scores) / len(scores) if scores else 0.0

        return {
            'total': len(scores),
            'average_score': round(average_score, 2),
            'grade_distribution': grade_counts,
            'low_quality_count': grade_counts['D'] + grade_counts[LOWEST_GRADE],
            'common_missing_fields': dict(missing.most_common(10)),
        }
