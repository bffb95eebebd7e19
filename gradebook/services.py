"""
Score entry and class result compilation.

These are the only gradebook functions that touch the record store; the
calculations themselves live in ``scoring`` and ``results``.
"""
import logging

from django.core.exceptions import ValidationError

from core.store import STUDENT_RESULTS, STUDENTS, SUBJECT_SCORES, TERMS

from .results import (
    StudentResult, SubjectScore, calculate_class_positions, calculate_term_result,
    determine_overall_grade, performance_remark,
)
from .schemes import DEFAULT_GRADING, ScoreStatus
from .scoring import calculate_grade, calculate_total_score, validate_score_entry

logger = logging.getLogger(__name__)


def student_display_name(student):
    name = student.get('name')
    if name:
        return name
    return ' '.join(p for p in (student.get('first_name'), student.get('last_name')) if p)


def active_class_students(store, class_id):
    """Active students currently in a class, ordered by name."""
    students = store.query(STUDENTS, current_class_id=class_id, is_active=True)
    return sorted(students, key=student_display_name)


def term_subject_scores(store, student_id, term_id):
    return [
        SubjectScore.from_dict(record)
        for record in store.query(SUBJECT_SCORES, student_id=student_id, term_id=term_id)
    ]


def _first(records):
    return records[0] if records else None


def record_subject_score(
    store,
    term_id,
    student_id,
    subject_id,
    assessment_scores,
    assessment_config,
    grading_config,
    class_id=None,
    student_name='',
    subject_name='',
    entered_by=None,
    is_absent=False,
    is_exempted=False,
):
    """
    Validate, score and save one student's entry for one subject.

    The entry is saved as a draft; entering the same scores again leaves the
    record unchanged apart from its timestamps.

    Raises:
        ValidationError: term missing or locked, score already published,
            or the scores do not fit the assessment scheme

    Returns:
        dict: the saved subject score record
    """
    term = store.get(TERMS, term_id)
    if term is None:
        raise ValidationError("Term not found", code='term_not_found')
    if term.get('grades_locked'):
        raise ValidationError("Grades are locked for this term", code='grades_locked')

    existing = _first(store.query(
        SUBJECT_SCORES, student_id=student_id, subject_id=subject_id, term_id=term_id,
    ))
    if existing and existing.get('status') == ScoreStatus.PUBLISHED:
        raise ValidationError("Published scores cannot be changed", code='published')

    if is_absent or is_exempted:
        # Nothing to score; the aggregator leaves the subject out
        scores = {}
        calculation = {
            'total_ca': 0, 'total': 0, 'percentage': 0,
            'max_score': assessment_config.total_max_score, 'breakdown': {},
        }
        grade = ''
    else:
        validation = validate_score_entry(assessment_scores, assessment_config)
        if not validation.valid:
            raise ValidationError(validation.errors, code='invalid_scores')

        scores = {
            component.component_id: float(assessment_scores[component.component_id])
            for component in assessment_config.components
            if assessment_scores.get(component.component_id) is not None
        }
        result = calculate_total_score(scores, assessment_config)
        calculation = result.to_dict()
        grade = calculate_grade(result.percentage, grading_config)

    now = store.now()
    fields = {
        'student_id': student_id,
        'student_name': student_name,
        'subject_id': subject_id,
        'subject_name': subject_name,
        'class_id': class_id,
        'term_id': term_id,
        'assessment_scores': scores,
        **calculation,
        'grade': grade,
        'is_absent': is_absent,
        'is_exempted': is_exempted,
        'status': ScoreStatus.DRAFT,
        'entered_by': entered_by,
        'updated_at': now,
    }

    if existing:
        store.update(SUBJECT_SCORES, existing['id'], fields)
        record_id = existing['id']
    else:
        record_id = store.add(SUBJECT_SCORES, {**fields, 'created_at': now})

    logger.debug(f"Saved {subject_id} score for student {student_id}, term {term_id}: {grade}")
    return {**(existing or {}), **fields, 'id': record_id}


def compile_class_results(store, class_id, term_id, grading_config=None):
    """
    Aggregate and rank a class for a term, saving one result per student.

    Returns:
        list of saved student result dicts, best position first
    """
    grading = grading_config or DEFAULT_GRADING
    students = active_class_students(store, class_id)

    term_results = []
    for student in students:
        scores = term_subject_scores(store, student['id'], term_id)
        term_result = calculate_term_result(scores, pass_mark=grading.pass_mark)
        term_results.append(
            StudentResult.from_term_result(student['id'], student_display_name(student), term_result)
        )

    ranked = calculate_class_positions(term_results)
    class_size = len(ranked)
    now = store.now()

    saved = []
    for result in ranked:
        fields = {
            **result.to_dict(),
            'class_id': class_id,
            'term_id': term_id,
            'class_size': class_size,
            'overall_grade': determine_overall_grade(result.average_score, grading),
            'remark': performance_remark(result.average_score),
            'updated_at': now,
        }
        existing = _first(store.query(STUDENT_RESULTS, student_id=result.student_id, term_id=term_id))
        if existing:
            store.update(STUDENT_RESULTS, existing['id'], fields)
            saved.append({**existing, **fields})
        else:
            record_id = store.add(STUDENT_RESULTS, {**fields, 'created_at': now})
            saved.append({**fields, 'id': record_id, 'created_at': now})

    logger.info(f"Compiled results for class {class_id}, term {term_id}: {class_size} students")
    return saved
