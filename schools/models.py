from django.db import models
from django_tenants.models import TenantMixin, DomainMixin

from gradebook.schemes import AssessmentConfig, DEFAULT_GRADING, GradingConfig
from promotions.criteria import PromotionSettings


class School(TenantMixin):
    # Basic Info
    name = models.CharField(max_length=100)
    short_name = models.CharField(max_length=20, blank=True, help_text="Short name for sidebar display")

    # Engine settings, stored as entered on the settings screen
    assessment_settings = models.JSONField(
        default=dict, blank=True,
        help_text="CA components, exam, project, calculation method and total maximum score"
    )
    grading_settings = models.JSONField(
        default=dict, blank=True,
        help_text="Grade boundaries and pass mark; the WAEC scale is used when empty"
    )
    promotion_settings = models.JSONField(
        default=dict, blank=True,
        help_text="Promotion mode and criteria"
    )
    core_subject_ids = models.JSONField(default=list, blank=True)

    # Metadata
    created_on = models.DateField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    auto_create_schema = True

    def __str__(self):
        return self.name

    @property
    def display_name(self):
        """Return short_name if available, otherwise name."""
        return self.short_name or self.name

    def get_assessment_config(self):
        return AssessmentConfig.from_dict(self.assessment_settings or {})

    def get_grading_config(self):
        if not self.grading_settings:
            return DEFAULT_GRADING
        return GradingConfig.from_dict(self.grading_settings)

    def get_promotion_settings(self):
        return PromotionSettings.from_dict(self.promotion_settings)


class Domain(DomainMixin):
    pass
