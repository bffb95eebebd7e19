"""
Tenant-defined assessment and grading schemes.

Schemes are stored per tenant as plain dictionaries and turned into immutable
objects with ``from_dict()`` before every calculation. The pure functions in
``gradebook.scoring`` and ``gradebook.results`` only ever receive these
objects as parameters.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from django.db import models
from django.utils.text import slugify
from django.utils.translation import gettext_lazy as _

from . import config

logger = logging.getLogger(__name__)

EXAM_KEY = 'exam'
PROJECT_KEY = 'project'
DEFAULT_TOTAL_MAX_SCORE = 100.0


class CalculationMethod(models.TextChoices):
    SUM = 'sum', _('Sum of all components')
    WEIGHTED_AVERAGE = 'weighted_average', _('Weighted average')
    BEST_OF_N = 'best_of_n', _('Best N continuous assessments')


class ScoreStatus(models.TextChoices):
    DRAFT = 'draft', _('Draft')
    PUBLISHED = 'published', _('Published')


def _to_float(value, default=0.0):
    if value is None or value == '':
        return default
    return float(value)


@dataclass(frozen=True)
class AssessmentComponent:
    """A single scored component (a CA, the exam, the project or a custom one)."""
    component_id: str
    name: str
    max_score: float
    is_optional: bool = False
    weight: Optional[float] = None
    enabled: bool = True

    @classmethod
    def from_dict(cls, data, component_id=None, enabled=True):
        """
        Build a component from its stored form.

        ``component_id`` forces the key (used for the exam and project). A
        stored component without an id gets one derived from its name here,
        once, so score lookups never depend on the display name.
        """
        data = data or {}
        name = data.get('name') or component_id or ''
        weight = data.get('weight')
        return cls(
            component_id=component_id or data.get('component_id') or slugify(name),
            name=name,
            max_score=_to_float(data.get('max_score')),
            is_optional=bool(data.get('is_optional', False)),
            weight=_to_float(weight) if weight is not None else None,
            enabled=bool(data.get('enabled', enabled)),
        )

    def to_dict(self):
        return {
            'component_id': self.component_id,
            'name': self.name,
            'max_score': self.max_score,
            'is_optional': self.is_optional,
            'weight': self.weight,
            'enabled': self.enabled,
        }


@dataclass(frozen=True)
class BestOfN:
    take: int
    out_of: int

    @classmethod
    def from_dict(cls, data):
        if not data:
            return None
        return cls(take=int(data.get('take', 0)), out_of=int(data.get('from', 0)))


def _disabled(component_id, name):
    return AssessmentComponent(component_id=component_id, name=name, max_score=0.0, enabled=False)


@dataclass(frozen=True)
class AssessmentConfig:
    """Scoring scheme for one tenant (or one class level within a tenant)."""
    ca_components: Tuple[AssessmentComponent, ...] = ()
    exam: AssessmentComponent = field(default_factory=lambda: _disabled(EXAM_KEY, 'Exam'))
    project: AssessmentComponent = field(default_factory=lambda: _disabled(PROJECT_KEY, 'Project'))
    custom_assessments: Tuple[AssessmentComponent, ...] = ()
    calculation_method: str = CalculationMethod.SUM
    best_of_n: Optional[BestOfN] = None
    total_max_score: float = DEFAULT_TOTAL_MAX_SCORE

    @classmethod
    def from_dict(cls, data):
        """
        Build a config from the stored tenant settings.

        Expected shape::

            {
                'ca_components': [{'name': 'CA1', 'max_score': 10, 'is_optional': False}],
                'exam': {'enabled': True, 'name': 'Exam', 'max_score': 70},
                'project': {'enabled': False, 'name': 'Project', 'max_score': 0},
                'custom_assessments': [],
                'calculation_method': 'sum',
                'best_of_n': {'take': 2, 'from': 3},
                'total_max_score': 100,
            }
        """
        exam = data.get('exam') or {}
        project = data.get('project') or {}
        return cls(
            ca_components=tuple(
                AssessmentComponent.from_dict(ca) for ca in data.get('ca_components', [])
            ),
            exam=AssessmentComponent.from_dict(
                # The exam has no optional flag: it is required whenever enabled
                {**exam, 'is_optional': False}, component_id=EXAM_KEY, enabled=False
            ),
            project=AssessmentComponent.from_dict(project, component_id=PROJECT_KEY, enabled=False),
            custom_assessments=tuple(
                AssessmentComponent.from_dict(custom)
                for custom in data.get('custom_assessments') or []
            ),
            calculation_method=data.get('calculation_method') or CalculationMethod.SUM,
            best_of_n=BestOfN.from_dict(data.get('best_of_n')),
            total_max_score=_to_float(data.get('total_max_score'), DEFAULT_TOTAL_MAX_SCORE),
        )

    @property
    def components(self):
        """Every enabled component in entry order: CAs, exam, project, custom."""
        components = list(self.ca_components)
        if self.exam.enabled:
            components.append(self.exam)
        if self.project.enabled:
            components.append(self.project)
        components.extend(self.custom_assessments)
        return components

    def find_problems(self) -> List[str]:
        """
        Report inconsistencies in the scheme without raising.

        Calculation still works on a scheme with problems; the list is meant
        for the settings screen and for warnings in the logs.
        """
        problems = []

        if self.total_max_score <= 0:
            problems.append('Total maximum score must be greater than zero')

        seen = set()
        for component in self.components:
            if component.component_id in seen:
                problems.append(f'Duplicate component id "{component.component_id}"')
            seen.add(component.component_id)
            if component.max_score < 0:
                problems.append(f'{component.name} has a negative maximum score')

        if self.calculation_method == CalculationMethod.SUM:
            # Optional components may or may not be counted, so the total has
            # to fall between the required and the full sum of maxima
            required_max = sum(c.max_score for c in self.components if not c.is_optional)
            possible_max = sum(c.max_score for c in self.components)
            if not required_max <= self.total_max_score <= possible_max:
                problems.append(
                    f'Component maximum scores ({required_max:g}-{possible_max:g}) '
                    f'do not match total maximum score ({self.total_max_score:g})'
                )

        elif self.calculation_method == CalculationMethod.WEIGHTED_AVERAGE:
            ca_weight = sum(ca.weight or 0 for ca in self.ca_components)
            if ca_weight > 100:
                problems.append(f'Continuous assessment weights total {ca_weight:g}, above 100')
            total_weight = ca_weight
            for component in (self.exam, self.project):
                if component.enabled:
                    total_weight += component.weight or 0
            if total_weight > 100:
                problems.append(f'Component weights total {total_weight:g}, above 100')
            unweighted = [ca.name for ca in self.ca_components if not ca.weight]
            unweighted += [
                component.name for component in (self.exam, self.project)
                if component.enabled and not component.weight
            ]
            if unweighted:
                problems.append(
                    f'Components without a weight are ignored: {", ".join(unweighted)}'
                )

        elif self.calculation_method == CalculationMethod.BEST_OF_N:
            if not self.best_of_n:
                problems.append('Best-of-N method selected but no take/from values configured')
            elif self.best_of_n.take > self.best_of_n.out_of:
                problems.append(
                    f'Cannot take best {self.best_of_n.take} from {self.best_of_n.out_of} assessments'
                )

        else:
            problems.append(f'Unknown calculation method "{self.calculation_method}"')

        return problems


@dataclass(frozen=True)
class GradeBoundary:
    grade: str
    min_score: float
    max_score: float
    description: str = ''

    @classmethod
    def from_dict(cls, data):
        return cls(
            grade=str(data['grade']),
            min_score=_to_float(data.get('min_score')),
            max_score=_to_float(data.get('max_score')),
            description=data.get('description') or '',
        )

    def contains(self, score):
        return self.min_score <= score <= self.max_score


@dataclass(frozen=True)
class GradingConfig:
    """
    Grade boundaries and pass mark.

    Boundaries are always kept sorted by ``min_score`` descending, whatever
    order they were stored in, so first-match lookup is deterministic.
    """
    grade_boundaries: Tuple[GradeBoundary, ...] = ()
    pass_mark: float = 40.0

    def __post_init__(self):
        ordered = tuple(sorted(self.grade_boundaries, key=lambda b: b.min_score, reverse=True))
        object.__setattr__(self, 'grade_boundaries', ordered)

    @classmethod
    def from_dict(cls, data):
        return cls(
            grade_boundaries=tuple(
                GradeBoundary.from_dict(b) for b in data.get('grade_boundaries', [])
            ),
            pass_mark=_to_float(data.get('pass_mark'), default=config.DEFAULT_PASS_MARK),
        )

    @property
    def lowest_grade(self):
        if not self.grade_boundaries:
            return None
        return self.grade_boundaries[-1].grade

    def find_problems(self) -> List[str]:
        """Report overlapping boundaries and gaps in the 0-100 coverage."""
        problems = []
        if not self.grade_boundaries:
            return ['No grade boundaries configured']

        ascending = list(reversed(self.grade_boundaries))
        for boundary in ascending:
            if boundary.min_score > boundary.max_score:
                problems.append(f'{boundary.grade}: minimum score is above maximum score')

        if ascending[0].min_score > 0:
            problems.append(f'Scores below {ascending[0].min_score:g} have no grade')
        if ascending[-1].max_score < 100:
            problems.append(f'Scores above {ascending[-1].max_score:g} have no grade')

        for lower, upper in zip(ascending, ascending[1:]):
            if upper.min_score <= lower.max_score:
                problems.append(f'{lower.grade} and {upper.grade} overlap')
            elif upper.min_score - lower.max_score > 1:
                problems.append(
                    f'Scores between {lower.max_score:g} and {upper.min_score:g} have no grade'
                )

        return problems


# WAEC-style boundaries used when a tenant has not configured its own
DEFAULT_GRADE_BOUNDARIES = (
    GradeBoundary('A1', 75, 100, 'Excellent'),
    GradeBoundary('B2', 70, 74, 'Very Good'),
    GradeBoundary('B3', 65, 69, 'Good'),
    GradeBoundary('C4', 60, 64, 'Credit'),
    GradeBoundary('C5', 55, 59, 'Credit'),
    GradeBoundary('C6', 50, 54, 'Credit'),
    GradeBoundary('D7', 45, 49, 'Pass'),
    GradeBoundary('E8', 40, 44, 'Pass'),
    GradeBoundary('F9', 0, 39, 'Fail'),
)

DEFAULT_GRADING = GradingConfig(grade_boundaries=DEFAULT_GRADE_BOUNDARIES, pass_mark=40.0)
