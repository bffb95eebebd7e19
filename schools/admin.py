import re
import logging

from django import forms
from django.contrib import admin
from django.core.exceptions import ValidationError
from django_tenants.utils import schema_context, get_public_schema_name

from .models import School, Domain

logger = logging.getLogger(__name__)


class SchoolForm(forms.ModelForm):
    """School form that checks the schema name and the engine settings."""

    class Meta:
        model = School
        fields = '__all__'

    def clean_schema_name(self):
        """
        Validate schema name to prevent 500 errors.
        Must be lowercase, alphanumeric, or underscore. No hyphens.
        """
        schema_name = self.cleaned_data.get('schema_name')
        if schema_name:
            schema_name = schema_name.lower()

            if not re.match(r'^[a-z0-9_]+$', schema_name):
                raise ValidationError(
                    "Invalid format. Use only lowercase letters, numbers, and underscores. "
                    "NO hyphens (-) or spaces allowed."
                )

            if schema_name in ['public', 'www', 'admin', 'postgres']:
                raise ValidationError(f"The name '{schema_name}' is reserved.")

        return schema_name

    def clean_promotion_settings(self):
        from promotions.criteria import PromotionSettings

        data = self.cleaned_data.get('promotion_settings')
        try:
            PromotionSettings.from_dict(data)
        except (TypeError, ValueError, AttributeError) as e:
            raise ValidationError(f"Invalid promotion settings: {e}")
        return data

    def clean(self):
        cleaned_data = super().clean()
        school = School(
            assessment_settings=cleaned_data.get('assessment_settings') or {},
            grading_settings=cleaned_data.get('grading_settings') or {},
        )
        # Problems are reported, not blocking: calculations fall back safely
        try:
            problems = (
                school.get_assessment_config().find_problems()
                + school.get_grading_config().find_problems()
            )
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            raise ValidationError(f"Invalid assessment or grading settings: {e}")
        for problem in problems:
            logger.warning(f"School {cleaned_data.get('schema_name')}: {problem}")
        return cleaned_data


class DomainInline(admin.TabularInline):
    model = Domain
    extra = 0
    max_num = 1
    min_num = 1
    fields = ('domain', 'is_primary')
    verbose_name = "School Domain"


@admin.register(School)
class SchoolAdmin(admin.ModelAdmin):
    form = SchoolForm
    inlines = [DomainInline]

    list_display = ('name', 'schema_name', 'created_on')
    readonly_fields = ('created_on',)

    def save_model(self, request, obj, form, change):
        # This triggers the django-tenants 'create_schema' logic
        with schema_context(get_public_schema_name()):
            super().save_model(request, obj, form, change)

    # Ensure deletions happen in public context
    def delete_model(self, request, obj):
        with schema_context(get_public_schema_name()):
            super().delete_model(request, obj)

    def get_queryset(self, request):
        with schema_context(get_public_schema_name()):
            return super().get_queryset(request)
