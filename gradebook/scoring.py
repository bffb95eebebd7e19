"""
Score validation and calculation for a single subject entry.

Handles:
- Validation of raw component scores against the assessment scheme
- Total/percentage calculation (sum, weighted average, best of N)
- Grade lookup against the grading scheme

Every function here is pure: the scheme objects are passed in explicitly and
nothing is read from the database or settings.
"""
import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Mapping, Optional

from .schemes import CalculationMethod, EXAM_KEY, PROJECT_KEY

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreCalculation:
    total_ca: float
    total: float
    percentage: float
    max_score: float
    breakdown: Dict[str, float] = field(default_factory=dict)

    def to_dict(self):
        return {
            'total_ca': self.total_ca,
            'total': self.total,
            'percentage': self.percentage,
            'max_score': self.max_score,
            'breakdown': dict(self.breakdown),
        }


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


def round_score(value):
    """Round half up to 2 decimal places."""
    return math.floor(value * 100 + 0.5) / 100


def format_number(value):
    value = float(value)
    return int(value) if value.is_integer() else value


def _get_score(assessment_scores, key):
    value = assessment_scores.get(key)
    if value is None:
        return None
    return float(value)


# ============ Calculation ============

def calculate_total_score(assessment_scores: Mapping[str, Optional[float]], assessment_config):
    """
    Calculate total score based on the assessment scheme.

    Args:
        assessment_scores: Mapping of component id to score (None if not entered),
            e.g. {'ca1': 8, 'ca2': 9, 'exam': 65}
        assessment_config: AssessmentConfig for the tenant

    Returns:
        ScoreCalculation with rounded total_ca, total and percentage
    """
    method = assessment_config.calculation_method
    exam = assessment_config.exam
    project = assessment_config.project

    exam_score = _get_score(assessment_scores, EXAM_KEY) if exam.enabled else None
    project_score = _get_score(assessment_scores, PROJECT_KEY) if project.enabled else None

    if method == CalculationMethod.SUM:
        total_ca = _sum_cas(assessment_scores, assessment_config)
        total = total_ca
        if exam_score is not None:
            total += exam_score
        if project_score is not None:
            total += project_score
        for custom in assessment_config.custom_assessments:
            custom_score = _get_score(assessment_scores, custom.component_id)
            if custom_score is not None:
                total += custom_score

    elif method == CalculationMethod.WEIGHTED_AVERAGE:
        total_ca = _weighted_cas(assessment_scores, assessment_config)
        total = total_ca
        total += _weighted(exam_score, exam)
        total += _weighted(project_score, project)

    elif method == CalculationMethod.BEST_OF_N:
        total_ca = _best_of_n(assessment_scores, assessment_config)
        total = total_ca
        if exam_score is not None:
            total += exam_score

    else:
        logger.warning(f'Unknown calculation method "{method}", falling back to sum')
        total_ca = _sum_cas(assessment_scores, assessment_config)
        total = total_ca
        if exam_score is not None:
            total += exam_score

    total_max_score = assessment_config.total_max_score
    percentage = (total / total_max_score) * 100 if total_max_score > 0 else 0

    breakdown = {
        key: score for key, score in assessment_scores.items()
        if score is not None
    }

    return ScoreCalculation(
        total_ca=round_score(total_ca),
        total=round_score(total),
        percentage=round_score(percentage),
        max_score=total_max_score,
        breakdown=breakdown,
    )


def _sum_cas(assessment_scores, assessment_config):
    total = 0.0
    for ca in assessment_config.ca_components:
        score = _get_score(assessment_scores, ca.component_id)
        if score is not None:
            total += score
    return total


def _weighted(score, component):
    # Components without a weight are left out of a weighted scheme
    if score is None or not component.weight or component.max_score <= 0:
        return 0.0
    percentage = (score / component.max_score) * 100
    return (percentage * component.weight) / 100


def _weighted_cas(assessment_scores, assessment_config):
    return sum(
        _weighted(_get_score(assessment_scores, ca.component_id), ca)
        for ca in assessment_config.ca_components
    )


def _best_of_n(assessment_scores, assessment_config):
    if not assessment_config.best_of_n:
        return _sum_cas(assessment_scores, assessment_config)

    scores = []
    for ca in assessment_config.ca_components:
        score = _get_score(assessment_scores, ca.component_id)
        if score is not None:
            scores.append(score)

    scores.sort(reverse=True)
    return sum(scores[:assessment_config.best_of_n.take])


# ============ Grading ============

def calculate_grade(percentage, grading_config):
    """
    Look up the grade for a percentage.

    Boundaries are matched in descending min_score order. A percentage that
    falls in the gap between integer boundaries (e.g. 74.5 between 70-74 and
    75-100) takes the grade whose minimum it has reached. When nothing
    matches, the lowest configured grade is returned instead of raising.
    That includes percentages above the top boundary (e.g. 100.5 when an
    optional component pushes the total past the maximum), which get the
    worst grade and are logged at WARNING.
    """
    boundaries = grading_config.grade_boundaries
    if not boundaries:
        return 'F'

    for boundary in boundaries:
        if boundary.contains(percentage):
            return boundary.grade

    if percentage <= boundaries[0].max_score:
        for boundary in boundaries:
            if percentage >= boundary.min_score:
                return boundary.grade
    else:
        logger.warning(
            f'Percentage {percentage} is above the top grade boundary '
            f'({boundaries[0].max_score:g}), using lowest grade {grading_config.lowest_grade}'
        )

    return grading_config.lowest_grade


# ============ Validation ============

def _is_number(value):
    if isinstance(value, bool):
        return False
    if isinstance(value, Decimal):
        return value.is_finite()
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    return False


def _check_component(component, value, required):
    """Return the first problem with one component's score, or None."""
    if value is None:
        if required:
            return f'{component.name} is required'
        return None

    if not _is_number(value):
        return f'{component.name} must be a valid number'

    if value < 0:
        return f'{component.name} score cannot be negative'

    if value > component.max_score:
        return (
            f'{component.name} score ({format_number(value)}) '
            f'exceeds maximum ({format_number(component.max_score)})'
        )

    return None


def validate_score_entry(assessment_scores, assessment_config):
    """
    Validate a score entry against the assessment scheme.

    Every component is checked and all problems are reported, one message
    per component. The input mapping is never modified.

    Returns:
        ValidationResult(valid, errors)
    """
    errors = []

    checks = [(ca, not ca.is_optional) for ca in assessment_config.ca_components]
    if assessment_config.exam.enabled:
        checks.append((assessment_config.exam, True))
    if assessment_config.project.enabled:
        checks.append((assessment_config.project, not assessment_config.project.is_optional))
    checks.extend(
        (custom, not custom.is_optional) for custom in assessment_config.custom_assessments
    )

    for component, required in checks:
        error = _check_component(component, assessment_scores.get(component.component_id), required)
        if error:
            errors.append(error)

    return ValidationResult(valid=not errors, errors=errors)


def get_assessment_label(key, assessment_config):
    """Get the display name for a component id, falling back to the id itself."""
    for component in assessment_config.ca_components:
        if component.component_id == key:
            return component.name

    if key == EXAM_KEY and assessment_config.exam.enabled:
        return assessment_config.exam.name

    if key == PROJECT_KEY and assessment_config.project.enabled:
        return assessment_config.project.name

    for custom in assessment_config.custom_assessments:
        if custom.component_id == key:
            return custom.name

    return key
