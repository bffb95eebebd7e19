"""
Tenant promotion settings.

Stored as a dictionary in the school's settings and parsed into immutable
objects before each analysis pass::

    {
        'mode': 'hybrid',
        'criteria': {
            'minimum_average_score': {'enabled': True, 'value': 50},
            'minimum_subjects_passed': {'enabled': True, 'value': 5},
            'core_subjects_requirement': {'enabled': True, 'type': 'minimum', 'minimum_required': 2},
            'attendance_requirement': {'enabled': False, 'minimum_percentage': 75},
        },
    }
"""
from dataclasses import dataclass
from typing import Optional

from .choices import CoreSubjectRule, PromotionMode


def _number(value):
    return float(value) if value is not None else None


@dataclass(frozen=True)
class Threshold:
    enabled: bool = False
    value: Optional[float] = None

    @classmethod
    def from_dict(cls, data):
        if not data:
            return None
        return cls(enabled=bool(data.get('enabled', False)), value=_number(data.get('value')))

    @property
    def is_active(self):
        return self.enabled and self.value is not None


@dataclass(frozen=True)
class CoreSubjectsRequirement:
    enabled: bool = False
    rule: str = CoreSubjectRule.ALL
    minimum_required: Optional[int] = None

    @classmethod
    def from_dict(cls, data):
        if not data:
            return None
        minimum = data.get('minimum_required')
        return cls(
            enabled=bool(data.get('enabled', False)),
            rule=data.get('type') or CoreSubjectRule.ALL,
            minimum_required=int(minimum) if minimum is not None else None,
        )


@dataclass(frozen=True)
class AttendanceRequirement:
    enabled: bool = False
    minimum_percentage: Optional[float] = None

    @classmethod
    def from_dict(cls, data):
        if not data:
            return None
        return cls(
            enabled=bool(data.get('enabled', False)),
            minimum_percentage=_number(data.get('minimum_percentage')),
        )

    @property
    def is_active(self):
        return self.enabled and self.minimum_percentage is not None


@dataclass(frozen=True)
class PromotionCriteria:
    minimum_average_score: Optional[Threshold] = None
    minimum_subjects_passed: Optional[Threshold] = None
    core_subjects_requirement: Optional[CoreSubjectsRequirement] = None
    attendance_requirement: Optional[AttendanceRequirement] = None

    @classmethod
    def from_dict(cls, data):
        if not data:
            return None
        return cls(
            minimum_average_score=Threshold.from_dict(data.get('minimum_average_score')),
            minimum_subjects_passed=Threshold.from_dict(data.get('minimum_subjects_passed')),
            core_subjects_requirement=CoreSubjectsRequirement.from_dict(
                data.get('core_subjects_requirement')
            ),
            attendance_requirement=AttendanceRequirement.from_dict(
                data.get('attendance_requirement')
            ),
        )


@dataclass(frozen=True)
class PromotionSettings:
    mode: str = PromotionMode.MANUAL
    criteria: Optional[PromotionCriteria] = None

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        mode = data.get('mode') or PromotionMode.MANUAL
        if mode not in PromotionMode.values:
            raise ValueError(f"Unknown promotion mode: {mode}")
        return cls(mode=mode, criteria=PromotionCriteria.from_dict(data.get('criteria')))
