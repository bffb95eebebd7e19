"""
Promotion eligibility analysis.

Classifies each student as automatically eligible, automatically ineligible
or needing an admin's review, based on the tenant's promotion settings.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from gradebook import config
from gradebook.results import calculate_term_result
from gradebook.scoring import format_number

from .choices import CoreSubjectRule, EligibilityCategory, PromotionMode


@dataclass(frozen=True)
class StudentPerformance:
    student_id: str
    student_name: str
    average_score: float
    total_subjects: int
    subjects_passed: int
    subjects_failed: int
    failed_subjects: Tuple[str, ...] = ()
    failed_core_subjects: Tuple[str, ...] = ()
    attendance: Optional[float] = None
    admission_number: str = ''

    def to_dict(self):
        return {
            'student_id': self.student_id,
            'student_name': self.student_name,
            'admission_number': self.admission_number,
            'average_score': self.average_score,
            'total_subjects': self.total_subjects,
            'subjects_passed': self.subjects_passed,
            'subjects_failed': self.subjects_failed,
            'failed_subjects': list(self.failed_subjects),
            'failed_core_subjects': list(self.failed_core_subjects),
            'attendance': self.attendance,
        }


@dataclass(frozen=True)
class EligibilityResult:
    is_eligible: bool
    category: str
    criteria_results: Dict[str, bool]
    failed_criteria: List[str] = field(default_factory=list)
    passed_criteria: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'is_eligible': self.is_eligible,
            'category': self.category,
            'criteria_results': dict(self.criteria_results),
            'failed_criteria': list(self.failed_criteria),
            'passed_criteria': list(self.passed_criteria),
        }


def _criteria_results():
    return {
        'passed_minimum_average': True,
        'passed_minimum_subjects': True,
        'passed_core_subjects': True,
        'passed_attendance': True,
    }


def analyze_eligibility(student, settings, core_subject_ids) -> EligibilityResult:
    """
    Check one student against the promotion criteria.

    Args:
        student: StudentPerformance for the term being promoted from
        settings: PromotionSettings for the tenant
        core_subject_ids: ids of the subjects designated as core

    Returns:
        EligibilityResult. Each enabled criterion is checked independently;
        criteria that are disabled or have no threshold count as passed.
    """
    results = _criteria_results()
    passed = []
    failed = []

    if settings.mode == PromotionMode.MANUAL:
        return EligibilityResult(
            is_eligible=False,
            category=EligibilityCategory.REVIEW_REQUIRED,
            criteria_results=results,
            failed_criteria=['Manual review required'],
            passed_criteria=[],
        )

    criteria = settings.criteria
    if criteria is None:
        return EligibilityResult(
            is_eligible=True,
            category=EligibilityCategory.AUTO_ELIGIBLE,
            criteria_results=results,
            failed_criteria=[],
            passed_criteria=['No criteria configured'],
        )

    average = format_number(student.average_score)

    # Minimum average score
    rule = criteria.minimum_average_score
    if rule and rule.is_active:
        threshold = format_number(rule.value)
        if student.average_score >= rule.value:
            passed.append(f'Average score: {average}% (≥{threshold}%)')
        else:
            results['passed_minimum_average'] = False
            failed.append(f'Average score: {average}% (required: {threshold}%)')

    # Minimum subjects passed
    rule = criteria.minimum_subjects_passed
    if rule and rule.is_active:
        threshold = format_number(rule.value)
        summary = f'Subjects passed: {student.subjects_passed}/{student.total_subjects}'
        if student.subjects_passed >= rule.value:
            passed.append(f'{summary} (≥{threshold})')
        else:
            results['passed_minimum_subjects'] = False
            failed.append(f'{summary} (required: {threshold})')

    # Core subjects
    core = criteria.core_subjects_requirement
    if core and core.enabled:
        failed_core_count = len(student.failed_core_subjects)

        if core.rule == CoreSubjectRule.ALL:
            if failed_core_count == 0:
                passed.append('All core subjects passed')
            else:
                results['passed_core_subjects'] = False
                failed.append(f'Failed core subjects: {", ".join(student.failed_core_subjects)}')

        elif core.rule == CoreSubjectRule.MINIMUM:
            core_count = len(core_subject_ids)
            core_passed = core_count - failed_core_count
            required = core.minimum_required or 0
            if core_passed >= required:
                passed.append(f'Core subjects passed: {core_passed}/{core_count}')
            else:
                results['passed_core_subjects'] = False
                failed.append(
                    f'Core subjects passed: {core_passed}/{core_count} (required: {required})'
                )

    # Attendance is only judged when it has been recorded
    attendance = criteria.attendance_requirement
    if attendance and attendance.is_active and student.attendance is not None:
        threshold = format_number(attendance.minimum_percentage)
        recorded = format_number(student.attendance)
        if student.attendance >= attendance.minimum_percentage:
            passed.append(f'Attendance: {recorded}% (≥{threshold}%)')
        else:
            results['passed_attendance'] = False
            failed.append(f'Attendance: {recorded}% (required: {threshold}%)')

    is_eligible = all(results.values())

    if is_eligible:
        category = EligibilityCategory.AUTO_ELIGIBLE
    elif settings.mode == PromotionMode.HYBRID:
        category = EligibilityCategory.REVIEW_REQUIRED
    else:
        category = EligibilityCategory.AUTO_INELIGIBLE

    return EligibilityResult(
        is_eligible=is_eligible,
        category=category,
        criteria_results=results,
        failed_criteria=failed,
        passed_criteria=passed,
    )


def categorize_students(students: Sequence[StudentPerformance], settings, core_subject_ids):
    """
    Group a cohort by eligibility category.

    Returns:
        dict: {'auto_eligible': [...], 'review_required': [...], 'auto_ineligible': [...]}
        where each entry is a (StudentPerformance, EligibilityResult) pair
    """
    groups = {category: [] for category in EligibilityCategory.values}
    for student in students:
        eligibility = analyze_eligibility(student, settings, core_subject_ids)
        groups[eligibility.category].append((student, eligibility))
    return groups


def build_student_performance(
    student_id,
    student_name,
    subject_scores,
    core_subject_ids,
    pass_mark=None,
    attendance=None,
    admission_number='',
) -> StudentPerformance:
    """
    Derive a student's promotion snapshot from their term subject scores.

    Args:
        subject_scores: SubjectScore list for the term
        core_subject_ids: ids of core subjects; failures among these are
            reported separately
        pass_mark: percentage needed to pass a subject (defaults to
            GRADEBOOK_DEFAULT_PASS_MARK)
        attendance: attendance percentage, or None if not tracked
    """
    if pass_mark is None:
        pass_mark = config.DEFAULT_PASS_MARK

    term_result = calculate_term_result(subject_scores, pass_mark=pass_mark)
    core_ids = set(core_subject_ids)
    failed = [s for s in subject_scores if s.is_counted and s.percentage < pass_mark]

    return StudentPerformance(
        student_id=student_id,
        student_name=student_name,
        admission_number=admission_number,
        average_score=term_result.average_score,
        total_subjects=term_result.number_of_subjects,
        subjects_passed=term_result.subjects_passed,
        subjects_failed=term_result.subjects_failed,
        failed_subjects=tuple(s.subject_name for s in failed),
        failed_core_subjects=tuple(s.subject_name for s in failed if s.subject_id in core_ids),
        attendance=attendance,
    )
