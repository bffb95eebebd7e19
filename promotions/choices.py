from django.db import models
from django.utils.translation import gettext_lazy as _


class PromotionMode(models.TextChoices):
    MANUAL = 'manual', _('Manual')
    AUTOMATIC = 'automatic', _('Automatic')
    HYBRID = 'hybrid', _('Hybrid')


class CoreSubjectRule(models.TextChoices):
    ALL = 'all', _('All core subjects')
    MINIMUM = 'minimum', _('Minimum number of core subjects')


class EligibilityCategory(models.TextChoices):
    AUTO_ELIGIBLE = 'auto_eligible', _('Automatically eligible')
    AUTO_INELIGIBLE = 'auto_ineligible', _('Automatically ineligible')
    REVIEW_REQUIRED = 'review_required', _('Review required')


class PromotionDecision(models.TextChoices):
    PROMOTE = 'promote', _('Promote')
    REPEAT = 'repeat', _('Repeat')
    GRADUATE = 'graduate', _('Graduate')


class CampaignStatus(models.TextChoices):
    DRAFT = 'draft', _('Draft')
    OPEN = 'open', _('Open')
    IN_REVIEW = 'in_review', _('In Review')
    APPROVED = 'approved', _('Approved')
    EXECUTING = 'executing', _('Executing')
    EXECUTED = 'executed', _('Executed')
    CANCELLED = 'cancelled', _('Cancelled')


class RecordStatus(models.TextChoices):
    DRAFT = 'draft', _('Draft')
    SUBMITTED = 'submitted', _('Submitted')
    APPROVED = 'approved', _('Approved')
    REJECTED = 'rejected', _('Rejected')
    EXECUTED = 'executed', _('Executed')


class ExecutionStatus(models.TextChoices):
    PROCESSING = 'processing', _('Processing')
    COMPLETED = 'completed', _('Completed')


class StudentStatus(models.TextChoices):
    ACTIVE = 'active', _('Active')
    GRADUATED = 'graduated', _('Graduated')
