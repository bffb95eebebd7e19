"""
Promotion analysis for a whole class.
"""
import logging

from core.store import STUDENT_RESULTS
from gradebook.services import active_class_students, student_display_name, term_subject_scores

from .eligibility import build_student_performance, categorize_students

logger = logging.getLogger(__name__)


def analyze_class_promotions(store, class_id, term_id, settings, core_subject_ids, pass_mark=None):
    """
    Build each active student's performance for the term and group the class
    by eligibility category.

    Attendance is taken from the student's compiled term result when one
    exists; without it the attendance criterion is not judged.

    Returns:
        dict of category -> list of (StudentPerformance, EligibilityResult)
    """
    performances = []
    for student in active_class_students(store, class_id):
        results = store.query(STUDENT_RESULTS, student_id=student['id'], term_id=term_id)
        attendance = results[0].get('attendance') if results else None

        performances.append(build_student_performance(
            student_id=student['id'],
            student_name=student_display_name(student),
            subject_scores=term_subject_scores(store, student['id'], term_id),
            core_subject_ids=core_subject_ids,
            pass_mark=pass_mark,
            attendance=attendance,
            admission_number=student.get('admission_number', ''),
        ))

    groups = categorize_students(performances, settings, core_subject_ids)
    logger.info(
        f"Promotion analysis for class {class_id}, term {term_id}: "
        + ', '.join(f"{category}={len(members)}" for category, members in groups.items())
    )
    return groups
