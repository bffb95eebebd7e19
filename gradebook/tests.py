from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, override_settings

from core.store import InMemoryRecordStore, STUDENT_RESULTS, SUBJECT_SCORES
from . import config
from .results import (
    StudentResult, SubjectScore, calculate_class_positions, calculate_term_result,
    determine_overall_grade, generate_result_summary, ordinal_position, performance_remark,
)
from .schemes import (
    AssessmentComponent, AssessmentConfig, CalculationMethod, DEFAULT_GRADING,
    GradeBoundary, GradingConfig, ScoreStatus,
)
from .scoring import (
    calculate_grade, calculate_total_score, get_assessment_label, validate_score_entry,
)
from .services import compile_class_results, record_subject_score


def standard_config(**overrides):
    """Three CAs out of 10 and an exam out of 70."""
    data = {
        'ca_components': [
            {'name': 'CA1', 'max_score': 10},
            {'name': 'CA2', 'max_score': 10},
            {'name': 'CA3', 'max_score': 10},
        ],
        'exam': {'enabled': True, 'name': 'Exam', 'max_score': 70},
        'calculation_method': 'sum',
        'total_max_score': 100,
    }
    data.update(overrides)
    return AssessmentConfig.from_dict(data)


def subject(subject_id, total, percentage, max_score=100, **kwargs):
    return SubjectScore(
        subject_id=subject_id,
        subject_name=subject_id.title(),
        total=total,
        percentage=percentage,
        grade='',
        max_score=max_score,
        **kwargs,
    )


class AssessmentConfigTest(SimpleTestCase):
    """Tests for building assessment schemes from tenant settings."""

    def test_component_ids_derived_from_names(self):
        """Components without an id get a slug of their name."""
        config = AssessmentConfig.from_dict({
            'ca_components': [{'name': 'Class Test 1', 'max_score': 20}],
            'total_max_score': 20,
        })
        self.assertEqual(config.ca_components[0].component_id, 'class-test-1')

    def test_explicit_component_id_kept(self):
        """A stored id survives renaming the component."""
        config = AssessmentConfig.from_dict({
            'ca_components': [{'component_id': 'ca1', 'name': 'Mid-term Test', 'max_score': 20}],
            'total_max_score': 20,
        })
        self.assertEqual(config.ca_components[0].component_id, 'ca1')

    def test_exam_and_project_ids(self):
        config = standard_config(project={'enabled': True, 'name': 'Portfolio', 'max_score': 10})
        self.assertEqual(config.exam.component_id, 'exam')
        self.assertEqual(config.project.component_id, 'project')

    def test_exam_is_never_optional(self):
        config = standard_config(exam={'enabled': True, 'name': 'Exam', 'max_score': 70, 'is_optional': True})
        self.assertFalse(config.exam.is_optional)

    def test_missing_exam_is_disabled(self):
        config = AssessmentConfig.from_dict({
            'ca_components': [{'name': 'CA1', 'max_score': 100}],
            'total_max_score': 100,
        })
        self.assertFalse(config.exam.enabled)
        self.assertEqual([c.component_id for c in config.components], ['ca1'])

    def test_consistent_scheme_has_no_problems(self):
        self.assertEqual(standard_config().find_problems(), [])

    def test_sum_mismatch_reported(self):
        problems = standard_config(total_max_score=120).find_problems()
        self.assertEqual(len(problems), 1)
        self.assertIn('do not match total maximum score', problems[0])

    def test_weights_over_100_reported(self):
        config = AssessmentConfig.from_dict({
            'ca_components': [
                {'name': 'CA1', 'max_score': 10, 'weight': 30},
                {'name': 'CA2', 'max_score': 10, 'weight': 30},
            ],
            'exam': {'enabled': True, 'name': 'Exam', 'max_score': 100, 'weight': 50},
            'calculation_method': 'weighted_average',
            'total_max_score': 100,
        })
        self.assertIn('Component weights total 110, above 100', config.find_problems())

    def test_unweighted_component_reported(self):
        config = AssessmentConfig.from_dict({
            'ca_components': [
                {'name': 'CA1', 'max_score': 10, 'weight': 30},
                {'name': 'CA2', 'max_score': 10},
            ],
            'calculation_method': 'weighted_average',
            'total_max_score': 100,
        })
        self.assertIn('Components without a weight are ignored: CA2', config.find_problems())

    def test_unweighted_exam_reported(self):
        """An enabled exam without a weight is dropped from a weighted total too."""
        config = AssessmentConfig.from_dict({
            'ca_components': [{'name': 'CA1', 'max_score': 10, 'weight': 30}],
            'exam': {'enabled': True, 'name': 'Exam', 'max_score': 100},
            'calculation_method': 'weighted_average',
            'total_max_score': 100,
        })
        self.assertIn('Components without a weight are ignored: Exam', config.find_problems())

    def test_missing_total_max_score_uses_default(self):
        """A stored scheme without a total is scored out of 100, not 0."""
        config = AssessmentConfig.from_dict({
            'ca_components': [{'name': 'CA1', 'max_score': 30}],
            'exam': {'enabled': True, 'name': 'Exam', 'max_score': 70},
        })
        self.assertEqual(config.total_max_score, AssessmentConfig().total_max_score)
        self.assertEqual(config.total_max_score, 100.0)

        result = calculate_total_score({'ca1': 25, 'exam': 60}, config)
        self.assertEqual(result.total, 85.0)
        self.assertEqual(result.percentage, 85.0)

    def test_empty_settings_use_default_total(self):
        self.assertEqual(AssessmentConfig.from_dict({}).total_max_score, 100.0)

    def test_explicit_zero_total_kept(self):
        """A stored zero stays zero and scores 0% instead of dividing by zero."""
        config = AssessmentConfig.from_dict({
            'ca_components': [{'name': 'CA1', 'max_score': 30}],
            'total_max_score': 0,
        })
        self.assertEqual(config.total_max_score, 0.0)
        self.assertEqual(calculate_total_score({'ca1': 25}, config).percentage, 0)
        self.assertIn('Total maximum score must be greater than zero', config.find_problems())

    def test_best_of_n_take_above_from_reported(self):
        config = standard_config(calculation_method='best_of_n', best_of_n={'take': 4, 'from': 3})
        self.assertIn('Cannot take best 4 from 3 assessments', config.find_problems())

    def test_duplicate_component_ids_reported(self):
        config = AssessmentConfig.from_dict({
            'ca_components': [
                {'name': 'Test', 'max_score': 50},
                {'name': 'test', 'max_score': 50},
            ],
            'total_max_score': 100,
        })
        self.assertIn('Duplicate component id "test"', config.find_problems())


class GradingConfigTest(SimpleTestCase):
    """Tests for grade boundary handling."""

    def test_boundaries_sorted_descending(self):
        """Stored order does not matter."""
        grading = GradingConfig.from_dict({
            'grade_boundaries': [
                {'grade': 'F', 'min_score': 0, 'max_score': 49},
                {'grade': 'A', 'min_score': 70, 'max_score': 100},
                {'grade': 'C', 'min_score': 50, 'max_score': 69},
            ],
        })
        self.assertEqual([b.grade for b in grading.grade_boundaries], ['A', 'C', 'F'])
        self.assertEqual(grading.lowest_grade, 'F')

    def test_pass_mark_defaults_from_settings(self):
        grading = GradingConfig.from_dict({'grade_boundaries': []})
        self.assertEqual(grading.pass_mark, 40.0)

    @override_settings(GRADEBOOK_DEFAULT_PASS_MARK=50.0)
    def test_pass_mark_setting_override(self):
        self.assertEqual(config.DEFAULT_PASS_MARK, 50.0)
        grading = GradingConfig.from_dict({'grade_boundaries': []})
        self.assertEqual(grading.pass_mark, 50.0)

    def test_default_scale_has_no_problems(self):
        self.assertEqual(DEFAULT_GRADING.find_problems(), [])

    def test_overlap_and_gap_reported(self):
        grading = GradingConfig(grade_boundaries=(
            GradeBoundary('A', 70, 100),
            GradeBoundary('B', 60, 72),
            GradeBoundary('F', 0, 50),
        ))
        problems = grading.find_problems()
        self.assertIn('B and A overlap', problems)
        self.assertIn('Scores between 50 and 60 have no grade', problems)

    def test_incomplete_coverage_reported(self):
        grading = GradingConfig(grade_boundaries=(GradeBoundary('A', 50, 90),))
        problems = grading.find_problems()
        self.assertIn('Scores below 50 have no grade', problems)
        self.assertIn('Scores above 90 have no grade', problems)


class ScoreCalculationTest(SimpleTestCase):
    """Tests for total and percentage calculation."""

    def test_sum_end_to_end(self):
        """CA 8+9+10 and exam 65 out of 100 gives 92 and an A1."""
        config = standard_config()
        grading = GradingConfig(grade_boundaries=(
            GradeBoundary('A1', 75, 100),
            GradeBoundary('F9', 0, 74),
        ))
        result = calculate_total_score({'ca1': 8, 'ca2': 9, 'ca3': 10, 'exam': 65}, config)

        self.assertEqual(result.total_ca, 27.0)
        self.assertEqual(result.total, 92.0)
        self.assertEqual(result.percentage, 92.0)
        self.assertEqual(result.max_score, 100.0)
        self.assertEqual(calculate_grade(result.percentage, grading), 'A1')

    def test_sum_absent_components_count_as_zero(self):
        config = standard_config()
        result = calculate_total_score({'ca1': 8, 'ca2': None, 'exam': 50}, config)
        self.assertEqual(result.total_ca, 8.0)
        self.assertEqual(result.total, 58.0)
        self.assertEqual(result.breakdown, {'ca1': 8, 'exam': 50})

    def test_sum_includes_project_and_custom(self):
        config = AssessmentConfig.from_dict({
            'ca_components': [{'name': 'CA1', 'max_score': 20}],
            'exam': {'enabled': True, 'name': 'Exam', 'max_score': 60},
            'project': {'enabled': True, 'name': 'Project', 'max_score': 10},
            'custom_assessments': [{'name': 'Oral', 'max_score': 10}],
            'total_max_score': 100,
        })
        result = calculate_total_score({'ca1': 15, 'exam': 50, 'project': 8, 'oral': 7}, config)
        self.assertEqual(result.total, 80.0)

    def test_sum_ignores_disabled_exam(self):
        config = standard_config(exam={'enabled': False, 'name': 'Exam', 'max_score': 70})
        result = calculate_total_score({'ca1': 5, 'exam': 60}, config)
        self.assertEqual(result.total, 5.0)
        # Breakdown still echoes what was entered
        self.assertEqual(result.breakdown['exam'], 60)

    def test_percentage_against_total_max_score(self):
        config = AssessmentConfig.from_dict({
            'ca_components': [{'name': 'CA1', 'max_score': 50}],
            'exam': {'enabled': True, 'name': 'Exam', 'max_score': 150},
            'total_max_score': 200,
        })
        result = calculate_total_score({'ca1': 40, 'exam': 110}, config)
        self.assertEqual(result.total, 150.0)
        self.assertEqual(result.percentage, 75.0)

    def test_zero_total_max_score(self):
        """No division by zero; percentage is 0."""
        config = standard_config(total_max_score=0)
        result = calculate_total_score({'ca1': 8, 'exam': 40}, config)
        self.assertEqual(result.total, 48.0)
        self.assertEqual(result.percentage, 0)

    def test_rounding_half_up(self):
        config = AssessmentConfig.from_dict({
            'ca_components': [{'name': 'CA1', 'max_score': 30}],
            'total_max_score': 30,
        })
        result = calculate_total_score({'ca1': 10}, config)
        self.assertEqual(result.percentage, 33.33)

        result = calculate_total_score({'ca1': 20}, config)
        self.assertEqual(result.percentage, 66.67)

    def test_weighted_average(self):
        config = AssessmentConfig.from_dict({
            'ca_components': [
                {'name': 'CA1', 'max_score': 20, 'weight': 15},
                {'name': 'CA2', 'max_score': 10, 'weight': 15},
            ],
            'exam': {'enabled': True, 'name': 'Exam', 'max_score': 100, 'weight': 70},
            'calculation_method': 'weighted_average',
            'total_max_score': 100,
        })
        result = calculate_total_score({'ca1': 10, 'ca2': 10, 'exam': 80}, config)
        # 50% of 15 + 100% of 15 + 80% of 70
        self.assertEqual(result.total_ca, 22.5)
        self.assertEqual(result.total, 78.5)
        self.assertEqual(result.percentage, 78.5)

    def test_weighted_average_drops_unweighted_components(self):
        config = AssessmentConfig.from_dict({
            'ca_components': [
                {'name': 'CA1', 'max_score': 10, 'weight': 40},
                {'name': 'CA2', 'max_score': 10},
            ],
            'exam': {'enabled': True, 'name': 'Exam', 'max_score': 100},
            'calculation_method': 'weighted_average',
            'total_max_score': 100,
        })
        result = calculate_total_score({'ca1': 10, 'ca2': 10, 'exam': 90}, config)
        self.assertEqual(result.total, 40.0)

    def test_weighted_average_skips_zero_max_score(self):
        config = AssessmentConfig.from_dict({
            'ca_components': [
                {'name': 'CA1', 'max_score': 0, 'weight': 50},
                {'name': 'CA2', 'max_score': 10, 'weight': 50},
            ],
            'calculation_method': 'weighted_average',
            'total_max_score': 100,
        })
        result = calculate_total_score({'ca1': 5, 'ca2': 5}, config)
        self.assertEqual(result.total, 25.0)

    def test_best_of_n(self):
        config = AssessmentConfig.from_dict({
            'ca_components': [
                {'name': 'CA1', 'max_score': 15},
                {'name': 'CA2', 'max_score': 15},
                {'name': 'CA3', 'max_score': 15},
            ],
            'exam': {'enabled': True, 'name': 'Exam', 'max_score': 70},
            'calculation_method': 'best_of_n',
            'best_of_n': {'take': 2, 'from': 3},
            'total_max_score': 100,
        })
        result = calculate_total_score({'ca1': 9, 'ca2': 14, 'ca3': 12, 'exam': 60}, config)
        self.assertEqual(result.total_ca, 26.0)
        self.assertEqual(result.total, 86.0)

    def test_best_of_n_with_fewer_scores_than_take(self):
        config = standard_config(calculation_method='best_of_n', best_of_n={'take': 2, 'from': 3})
        result = calculate_total_score({'ca2': 7, 'exam': 50}, config)
        self.assertEqual(result.total, 57.0)

    def test_best_of_n_without_settings_sums_cas(self):
        config = standard_config(calculation_method='best_of_n')
        result = calculate_total_score({'ca1': 5, 'ca2': 6, 'ca3': 7, 'exam': 50}, config)
        self.assertEqual(result.total, 68.0)

    def test_unknown_method_falls_back_to_sum(self):
        config = standard_config(
            calculation_method='median',
            project={'enabled': True, 'name': 'Project', 'max_score': 10},
        )
        with self.assertLogs('gradebook.scoring', level='WARNING'):
            result = calculate_total_score({'ca1': 5, 'exam': 50, 'project': 9}, config)
        self.assertEqual(result.total, 55.0)

    def test_idempotent(self):
        config = standard_config()
        scores = {'ca1': 7.5, 'ca2': 8.25, 'ca3': 9, 'exam': 61.5}
        first = calculate_total_score(scores, config)
        second = calculate_total_score(scores, config)
        self.assertEqual(first, second)
        self.assertEqual(
            calculate_grade(first.percentage, DEFAULT_GRADING),
            calculate_grade(second.percentage, DEFAULT_GRADING),
        )

    def test_assessment_label(self):
        config = standard_config(custom_assessments=[{'name': 'Oral Test', 'max_score': 0}])
        self.assertEqual(get_assessment_label('ca2', config), 'CA2')
        self.assertEqual(get_assessment_label('exam', config), 'Exam')
        self.assertEqual(get_assessment_label('oral-test', config), 'Oral Test')
        self.assertEqual(get_assessment_label('unknown', config), 'unknown')


class GradeLookupTest(SimpleTestCase):
    """Tests for grade boundary lookup."""

    def test_default_scale(self):
        self.assertEqual(calculate_grade(92, DEFAULT_GRADING), 'A1')
        self.assertEqual(calculate_grade(75, DEFAULT_GRADING), 'A1')
        self.assertEqual(calculate_grade(74, DEFAULT_GRADING), 'B2')
        self.assertEqual(calculate_grade(40, DEFAULT_GRADING), 'E8')
        self.assertEqual(calculate_grade(0, DEFAULT_GRADING), 'F9')

    def test_fractional_gap(self):
        """74.5 sits between 70-74 and 75-100 and takes the lower grade."""
        self.assertEqual(calculate_grade(74.5, DEFAULT_GRADING), 'B2')
        self.assertEqual(calculate_grade(39.99, DEFAULT_GRADING), 'F9')

    def test_unordered_boundaries(self):
        grading = GradingConfig(grade_boundaries=(
            GradeBoundary('C', 40, 59),
            GradeBoundary('A', 80, 100),
            GradeBoundary('B', 60, 79),
            GradeBoundary('F', 0, 39),
        ))
        self.assertEqual(calculate_grade(85, grading), 'A')
        self.assertEqual(calculate_grade(65, grading), 'B')

    def test_unmatched_falls_back_to_lowest_grade(self):
        grading = GradingConfig(grade_boundaries=(
            GradeBoundary('A', 70, 100),
            GradeBoundary('B', 50, 69),
        ))
        self.assertEqual(calculate_grade(30, grading), 'B')
        self.assertEqual(calculate_grade(120, grading), 'B')

    def test_above_top_boundary_gets_lowest_grade_with_warning(self):
        """Over 100% is treated as unmatched and logged."""
        with self.assertLogs('gradebook.scoring', level='WARNING') as logs:
            self.assertEqual(calculate_grade(100.5, DEFAULT_GRADING), 'F9')
        self.assertIn('above the top grade boundary', logs.output[0])

    def test_no_boundaries(self):
        self.assertEqual(calculate_grade(85, GradingConfig()), 'F')


class ScoreValidationTest(SimpleTestCase):
    """Tests for score entry validation."""

    def test_valid_entry(self):
        result = validate_score_entry({'ca1': 8, 'ca2': 9, 'ca3': 10, 'exam': 65}, standard_config())
        self.assertTrue(result.valid)
        self.assertEqual(result.errors, [])

    def test_all_errors_reported(self):
        result = validate_score_entry({'ca1': -1, 'ca2': 12, 'exam': 'abc'}, standard_config())
        self.assertFalse(result.valid)
        self.assertEqual(result.errors, [
            'CA1 score cannot be negative',
            'CA2 score (12) exceeds maximum (10)',
            'CA3 is required',
            'Exam must be a valid number',
        ])

    def test_exam_required_when_enabled(self):
        result = validate_score_entry({'ca1': 8, 'ca2': 9, 'ca3': 10}, standard_config())
        self.assertEqual(result.errors, ['Exam is required'])

    def test_optional_components(self):
        config = AssessmentConfig.from_dict({
            'ca_components': [
                {'name': 'CA1', 'max_score': 10},
                {'name': 'CA2', 'max_score': 10, 'is_optional': True},
            ],
            'project': {'enabled': True, 'name': 'Project', 'max_score': 10, 'is_optional': True},
            'total_max_score': 30,
        })
        self.assertTrue(validate_score_entry({'ca1': 5}, config).valid)

        # Optional but present values are still range-checked
        result = validate_score_entry({'ca1': 5, 'ca2': 11, 'project': -2}, config)
        self.assertEqual(result.errors, [
            'CA2 score (11) exceeds maximum (10)',
            'Project score cannot be negative',
        ])

    def test_required_project(self):
        config = standard_config(project={'enabled': True, 'name': 'Project', 'max_score': 10})
        result = validate_score_entry({'ca1': 8, 'ca2': 9, 'ca3': 10, 'exam': 60}, config)
        self.assertEqual(result.errors, ['Project is required'])

    def test_non_finite_and_boolean_values_rejected(self):
        result = validate_score_entry(
            {'ca1': float('nan'), 'ca2': True, 'ca3': float('inf'), 'exam': 60},
            standard_config(),
        )
        self.assertEqual(result.errors, [
            'CA1 must be a valid number',
            'CA2 must be a valid number',
            'CA3 must be a valid number',
        ])

    def test_decimal_values_accepted(self):
        scores = {'ca1': Decimal('7.5'), 'ca2': Decimal('10'), 'ca3': 0, 'exam': Decimal('70')}
        self.assertTrue(validate_score_entry(scores, standard_config()).valid)

    def test_input_not_mutated(self):
        scores = {'ca1': 8, 'ca2': None, 'exam': 200}
        validate_score_entry(scores, standard_config())
        self.assertEqual(scores, {'ca1': 8, 'ca2': None, 'exam': 200})


class TermResultTest(SimpleTestCase):
    """Tests for aggregating subject scores into a term result."""

    def test_average_uses_percentages(self):
        """85% of 100 and 90% of 50 average to 87.5, not the raw totals."""
        result = calculate_term_result([
            subject('maths', total=85, percentage=85, max_score=100),
            subject('english', total=45, percentage=90, max_score=50),
        ])
        self.assertEqual(result.total_score, 130.0)
        self.assertEqual(result.average_score, 87.5)
        self.assertEqual(result.number_of_subjects, 2)
        self.assertEqual(result.subjects_passed, 2)

    def test_all_absent(self):
        result = calculate_term_result([
            subject('maths', total=0, percentage=0, is_absent=True),
            subject('english', total=0, percentage=0, is_absent=True),
        ])
        self.assertEqual(result.number_of_subjects, 0)
        self.assertEqual(result.average_score, 0)
        self.assertEqual(result.total_score, 0)

    def test_empty_input(self):
        result = calculate_term_result([])
        self.assertEqual(result.to_dict(), {
            'total_score': 0,
            'average_score': 0,
            'number_of_subjects': 0,
            'subjects_passed': 0,
            'subjects_failed': 0,
        })

    def test_exempted_subjects_excluded(self):
        result = calculate_term_result([
            subject('maths', total=60, percentage=60),
            subject('french', total=0, percentage=0, is_exempted=True),
        ])
        self.assertEqual(result.number_of_subjects, 1)
        self.assertEqual(result.average_score, 60.0)

    def test_pass_fail_counts(self):
        scores = [
            subject('maths', total=40, percentage=40),
            subject('english', total=39.5, percentage=39.5),
            subject('science', total=70, percentage=70),
        ]
        result = calculate_term_result(scores)
        self.assertEqual(result.subjects_passed, 2)
        self.assertEqual(result.subjects_failed, 1)

        result = calculate_term_result(scores, pass_mark=50)
        self.assertEqual(result.subjects_passed, 1)
        self.assertEqual(result.subjects_failed, 2)

    def test_subject_score_from_dict(self):
        score = SubjectScore.from_dict({
            'subject_id': 'maths', 'subject_name': 'Mathematics',
            'total': 72, 'percentage': 72, 'grade': 'B2', 'max_score': 100,
        })
        self.assertEqual(score.total, 72.0)
        self.assertTrue(score.is_counted)

    def test_result_summary(self):
        summary = generate_result_summary(
            [subject('maths', total=80, percentage=80), subject('english', total=70, percentage=70)],
            position=3,
            class_size=30,
        )
        self.assertEqual(summary.average_score, 75.0)
        self.assertEqual(summary.overall_grade, 'A1')
        self.assertEqual(summary.position, 3)
        self.assertEqual(summary.class_size, 30)
        self.assertTrue(summary.remark.startswith('Excellent'))

    def test_overall_grade_uses_given_scale(self):
        grading = GradingConfig(grade_boundaries=(
            GradeBoundary('Pass', 50, 100),
            GradeBoundary('Fail', 0, 49),
        ))
        self.assertEqual(determine_overall_grade(62, grading), 'Pass')
        self.assertEqual(determine_overall_grade(62), 'C4')

    def test_remark_bands(self):
        self.assertTrue(performance_remark(100).startswith('Excellent'))
        self.assertTrue(performance_remark(70).startswith('Very good'))
        self.assertTrue(performance_remark(55).startswith('Good'))
        self.assertTrue(performance_remark(45).startswith('Satisfactory'))
        self.assertTrue(performance_remark(40).startswith('Fair'))
        self.assertTrue(performance_remark(0).startswith('Poor'))

    def test_ordinal_position(self):
        self.assertEqual(
            [ordinal_position(p) for p in (1, 2, 3, 4, 11, 12, 13, 21, 22, 101, 111)],
            ['1st', '2nd', '3rd', '4th', '11th', '12th', '13th', '21st', '22nd', '101st', '111th'],
        )


class ClassPositionTest(SimpleTestCase):
    """Tests for class ranking."""

    def make(self, student_id, total, average):
        return StudentResult(student_id=student_id, student_name=student_id, total_score=total, average_score=average)

    def test_ties_share_position_and_skip(self):
        students = [
            self.make('a', 850, 85),
            self.make('b', 920, 92),
            self.make('c', 780, 78),
            self.make('d', 850, 85),
        ]
        ranked = calculate_class_positions(students)
        self.assertEqual([s.total_score for s in ranked], [920, 850, 850, 780])
        self.assertEqual([s.position for s in ranked], [1, 2, 2, 4])

    def test_average_breaks_total_tie(self):
        ranked = calculate_class_positions([
            self.make('low', 850, 85.0),
            self.make('high', 850, 85.5),
        ])
        self.assertEqual([s.student_id for s in ranked], ['high', 'low'])
        self.assertEqual([s.position for s in ranked], [1, 2])

    def test_tie_at_top(self):
        ranked = calculate_class_positions([
            self.make('a', 900, 90),
            self.make('b', 900, 90),
            self.make('c', 800, 80),
        ])
        self.assertEqual([s.position for s in ranked], [1, 1, 3])

    def test_single_and_empty(self):
        self.assertEqual(calculate_class_positions([]), [])
        self.assertEqual(calculate_class_positions([self.make('a', 0, 0)])[0].position, 1)

    def test_input_not_mutated(self):
        students = [self.make('a', 500, 50), self.make('b', 600, 60)]
        calculate_class_positions(students)
        self.assertEqual([s.student_id for s in students], ['a', 'b'])
        self.assertIsNone(students[0].position)


class RecordSubjectScoreTest(SimpleTestCase):
    """Tests for the score entry flow."""

    def setUp(self):
        self.store = InMemoryRecordStore({
            'terms': {
                'term1': {'name': 'First Term', 'grades_locked': False},
                'term2': {'name': 'Second Term', 'grades_locked': True},
            },
        })
        self.config = standard_config()

    def record(self, scores, term_id='term1', **kwargs):
        return record_subject_score(
            self.store, term_id, 'stu1', 'maths', scores, self.config, DEFAULT_GRADING,
            class_id='jss1', student_name='Ama Mensah', subject_name='Mathematics', **kwargs
        )

    def test_saves_draft_score(self):
        saved = self.record({'ca1': 8, 'ca2': 9, 'ca3': 10, 'exam': 65})
        self.assertEqual(saved['total'], 92.0)
        self.assertEqual(saved['grade'], 'A1')
        self.assertEqual(saved['status'], ScoreStatus.DRAFT)

        stored = self.store.get(SUBJECT_SCORES, saved['id'])
        self.assertEqual(stored['percentage'], 92.0)
        self.assertEqual(stored['assessment_scores'], {'ca1': 8.0, 'ca2': 9.0, 'ca3': 10.0, 'exam': 65.0})

    def test_reentry_updates_same_record(self):
        first = self.record({'ca1': 8, 'ca2': 9, 'ca3': 10, 'exam': 65})
        second = self.record({'ca1': 8, 'ca2': 9, 'ca3': 10, 'exam': 65})
        self.assertEqual(first['id'], second['id'])
        self.assertEqual(len(self.store.query(SUBJECT_SCORES)), 1)
        self.assertEqual(first['total'], second['total'])

    def test_invalid_scores_rejected(self):
        with self.assertRaises(ValidationError) as cm:
            self.record({'ca1': 11, 'ca2': 9, 'ca3': 10, 'exam': 65})
        self.assertEqual(cm.exception.messages, ['CA1 score (11) exceeds maximum (10)'])
        self.assertEqual(self.store.query(SUBJECT_SCORES), [])

    def test_locked_term_rejected(self):
        with self.assertRaises(ValidationError) as cm:
            self.record({'ca1': 8, 'ca2': 9, 'ca3': 10, 'exam': 65}, term_id='term2')
        self.assertEqual(cm.exception.code, 'grades_locked')

    def test_unknown_term_rejected(self):
        with self.assertRaises(ValidationError):
            self.record({'ca1': 8, 'ca2': 9, 'ca3': 10, 'exam': 65}, term_id='missing')

    def test_published_score_immutable(self):
        saved = self.record({'ca1': 8, 'ca2': 9, 'ca3': 10, 'exam': 65})
        self.store.update(SUBJECT_SCORES, saved['id'], {'status': ScoreStatus.PUBLISHED})
        with self.assertRaises(ValidationError) as cm:
            self.record({'ca1': 1, 'ca2': 1, 'ca3': 1, 'exam': 1})
        self.assertEqual(cm.exception.code, 'published')

    def test_absent_student_skips_validation(self):
        saved = self.record({}, is_absent=True)
        self.assertTrue(saved['is_absent'])
        self.assertEqual(saved['total'], 0)
        self.assertEqual(saved['grade'], '')


class CompileClassResultsTest(SimpleTestCase):
    """Tests for compiling and ranking a class."""

    def setUp(self):
        scores = {}
        for i, (student_id, maths, english) in enumerate([
            ('s1', 80, 90),
            ('s2', 90, 80),
            ('s3', 50, 40),
        ]):
            scores[f'm{i}'] = {
                'student_id': student_id, 'term_id': 't1', 'subject_id': 'maths',
                'total': maths, 'percentage': maths, 'max_score': 100,
            }
            scores[f'e{i}'] = {
                'student_id': student_id, 'term_id': 't1', 'subject_id': 'english',
                'total': english, 'percentage': english, 'max_score': 100,
            }
        self.store = InMemoryRecordStore({
            'students': {
                's1': {'first_name': 'Ama', 'last_name': 'Mensah', 'current_class_id': 'c1', 'is_active': True},
                's2': {'first_name': 'Kofi', 'last_name': 'Boateng', 'current_class_id': 'c1', 'is_active': True},
                's3': {'name': 'Yaw Asante', 'current_class_id': 'c1', 'is_active': True},
                's4': {'name': 'Graduate', 'current_class_id': 'c1', 'is_active': False},
            },
            'subject_scores': scores,
        })

    def test_ranks_and_saves_results(self):
        saved = compile_class_results(self.store, 'c1', 't1')

        self.assertEqual(len(saved), 3)
        by_student = {r['student_id']: r for r in saved}
        self.assertEqual(by_student['s1']['position'], 1)
        self.assertEqual(by_student['s2']['position'], 1)
        self.assertEqual(by_student['s3']['position'], 3)
        self.assertEqual(by_student['s3']['overall_grade'], 'D7')
        self.assertEqual(by_student['s1']['student_name'], 'Ama Mensah')
        self.assertEqual(by_student['s1']['class_size'], 3)

        self.assertEqual(len(self.store.query(STUDENT_RESULTS, term_id='t1')), 3)

    def test_recompiling_updates_existing_results(self):
        compile_class_results(self.store, 'c1', 't1')
        compile_class_results(self.store, 'c1', 't1')
        self.assertEqual(len(self.store.query(STUDENT_RESULTS)), 3)
