"""
Term results: aggregate subject scores per student and rank a class.

Handles:
- Term result calculation (total, percentage-based average, pass/fail counts)
- Class position ranking with shared positions for ties
- Overall grade and performance remark for the report card
"""
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

from . import config
from .schemes import DEFAULT_GRADING
from .scoring import calculate_grade, round_score


@dataclass(frozen=True)
class SubjectScore:
    subject_id: str
    subject_name: str
    total: float
    percentage: float
    grade: str
    max_score: float
    is_absent: bool = False
    is_exempted: bool = False

    @classmethod
    def from_dict(cls, data):
        return cls(
            subject_id=data['subject_id'],
            subject_name=data.get('subject_name', ''),
            total=float(data.get('total') or 0),
            percentage=float(data.get('percentage') or 0),
            grade=data.get('grade', ''),
            max_score=float(data.get('max_score') or 0),
            is_absent=bool(data.get('is_absent', False)),
            is_exempted=bool(data.get('is_exempted', False)),
        )

    @property
    def is_counted(self):
        return not (self.is_absent or self.is_exempted)


@dataclass(frozen=True)
class TermResult:
    total_score: float
    average_score: float
    number_of_subjects: int
    subjects_passed: int
    subjects_failed: int

    def to_dict(self):
        return {
            'total_score': self.total_score,
            'average_score': self.average_score,
            'number_of_subjects': self.number_of_subjects,
            'subjects_passed': self.subjects_passed,
            'subjects_failed': self.subjects_failed,
        }


@dataclass(frozen=True)
class ResultSummary(TermResult):
    position: int
    class_size: int
    overall_grade: str
    remark: str

    def to_dict(self):
        data = super().to_dict()
        data.update({
            'position': self.position,
            'class_size': self.class_size,
            'overall_grade': self.overall_grade,
            'remark': self.remark,
        })
        return data


@dataclass(frozen=True)
class StudentResult:
    student_id: str
    student_name: str
    total_score: float
    average_score: float
    number_of_subjects: int = 0
    subjects_passed: int = 0
    subjects_failed: int = 0
    position: Optional[int] = None

    @classmethod
    def from_term_result(cls, student_id, student_name, term_result):
        return cls(
            student_id=student_id,
            student_name=student_name,
            total_score=term_result.total_score,
            average_score=term_result.average_score,
            number_of_subjects=term_result.number_of_subjects,
            subjects_passed=term_result.subjects_passed,
            subjects_failed=term_result.subjects_failed,
        )

    def to_dict(self):
        return {
            'student_id': self.student_id,
            'student_name': self.student_name,
            'total_score': self.total_score,
            'average_score': self.average_score,
            'number_of_subjects': self.number_of_subjects,
            'subjects_passed': self.subjects_passed,
            'subjects_failed': self.subjects_failed,
            'position': self.position,
        }


def calculate_term_result(scores: Sequence[SubjectScore], pass_mark=None) -> TermResult:
    """
    Calculate a student's term result from their subject scores.

    Absent and exempted subjects are left out. The average is taken over
    percentages so subjects marked out of different maxima compare fairly.
    """
    if pass_mark is None:
        pass_mark = config.DEFAULT_PASS_MARK

    counted = [s for s in scores if s.is_counted]
    if not counted:
        return TermResult(
            total_score=0,
            average_score=0,
            number_of_subjects=0,
            subjects_passed=0,
            subjects_failed=0,
        )

    total_score = sum(s.total for s in counted)
    average = sum(s.percentage for s in counted) / len(counted)
    passed = len([s for s in counted if s.percentage >= pass_mark])

    return TermResult(
        total_score=round_score(total_score),
        average_score=round_score(average),
        number_of_subjects=len(counted),
        subjects_passed=passed,
        subjects_failed=len(counted) - passed,
    )


def calculate_class_positions(students: Sequence[StudentResult]) -> List[StudentResult]:
    """
    Rank students by total score, then average score, both descending.

    Students level on both share a position and the next student is placed
    after all of them: [920, 850, 850, 780] ranks as [1, 2, 2, 4].
    """
    ranked = sorted(students, key=lambda s: (-s.total_score, -s.average_score))

    positioned = []
    position = 0
    last_key = None
    for i, student in enumerate(ranked, 1):
        key = (student.total_score, student.average_score)
        if key != last_key:
            position = i
        positioned.append(replace(student, position=position))
        last_key = key

    return positioned


def determine_overall_grade(average_score, grading_config=None):
    """Grade a term average; uses the default WAEC scale when none is configured."""
    return calculate_grade(average_score, grading_config or DEFAULT_GRADING)


# (minimum average, remark), highest band first
PERFORMANCE_REMARKS = (
    (75, 'Excellent performance! Keep up the outstanding work.'),
    (65, 'Very good performance. Continue working hard.'),
    (55, 'Good performance. Keep striving for excellence.'),
    (45, 'Satisfactory performance. More effort is needed to excel.'),
    (40, 'Fair performance. Student must improve.'),
)
POOR_PERFORMANCE_REMARK = 'Poor performance. Student must improve significantly.'


def performance_remark(average_score):
    for minimum, remark in PERFORMANCE_REMARKS:
        if average_score >= minimum:
            return remark
    return POOR_PERFORMANCE_REMARK


def generate_result_summary(scores, position, class_size, grading_config=None) -> ResultSummary:
    """Build the report card summary for one student."""
    grading = grading_config or DEFAULT_GRADING
    term_result = calculate_term_result(scores, pass_mark=grading.pass_mark)

    return ResultSummary(
        **term_result.to_dict(),
        position=position,
        class_size=class_size,
        overall_grade=determine_overall_grade(term_result.average_score, grading),
        remark=performance_remark(term_result.average_score),
    )


def ordinal_position(position):
    """Format a position as 1st, 2nd, 3rd, 11th, 22nd..."""
    if 11 <= position % 100 <= 13:
        return f'{position}th'
    suffix = {1: 'st', 2: 'nd', 3: 'rd'}.get(position % 10, 'th')
    return f'{position}{suffix}'
