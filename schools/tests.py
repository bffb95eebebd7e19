from django.core.exceptions import ValidationError
from django.test import SimpleTestCase

from gradebook.schemes import CalculationMethod, DEFAULT_GRADING
from promotions.choices import PromotionMode
from schools.admin import SchoolForm
from schools.models import School


class SchoolSettingsTests(SimpleTestCase):
    """Tests for turning stored school settings into engine configuration."""

    def test_empty_settings_use_defaults(self):
        school = School(name='Accra Academy', schema_name='accra')
        self.assertIs(school.get_grading_config(), DEFAULT_GRADING)
        self.assertEqual(school.get_promotion_settings().mode, PromotionMode.MANUAL)
        self.assertEqual(school.get_assessment_config().calculation_method, CalculationMethod.SUM)

    def test_stored_settings(self):
        school = School(
            name='Accra Academy',
            schema_name='accra',
            assessment_settings={
                'ca_components': [{'name': 'CA1', 'max_score': 30}],
                'exam': {'enabled': True, 'name': 'Exam', 'max_score': 70},
                'calculation_method': 'sum',
                'total_max_score': 100,
            },
            grading_settings={
                'grade_boundaries': [
                    {'grade': 'F', 'min_score': 0, 'max_score': 49},
                    {'grade': 'P', 'min_score': 50, 'max_score': 100},
                ],
                'pass_mark': 50,
            },
            promotion_settings={'mode': 'hybrid'},
        )
        self.assertEqual(school.get_assessment_config().exam.max_score, 70.0)
        grading = school.get_grading_config()
        self.assertEqual(grading.pass_mark, 50.0)
        self.assertEqual(grading.grade_boundaries[0].grade, 'P')
        self.assertEqual(school.get_promotion_settings().mode, PromotionMode.HYBRID)

    def test_display_name(self):
        self.assertEqual(School(name='Accra Academy', short_name='Accra Aca').display_name, 'Accra Aca')
        self.assertEqual(School(name='Accra Academy').display_name, 'Accra Academy')


class SchoolFormTests(SimpleTestCase):
    """Tests for the school admin form's field checks."""

    def form(self, **data):
        form = SchoolForm()
        form.cleaned_data = data
        return form

    def test_schema_name_lowercased(self):
        self.assertEqual(self.form(schema_name='Accra_1').clean_schema_name(), 'accra_1')

    def test_schema_name_rejects_hyphens(self):
        with self.assertRaises(ValidationError):
            self.form(schema_name='accra-academy').clean_schema_name()

    def test_reserved_schema_name(self):
        with self.assertRaises(ValidationError):
            self.form(schema_name='public').clean_schema_name()

    def test_unknown_promotion_mode_rejected(self):
        with self.assertRaises(ValidationError):
            self.form(promotion_settings={'mode': 'lottery'}).clean_promotion_settings()
