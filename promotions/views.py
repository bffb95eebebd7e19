"""
JSON endpoints for running promotion campaigns.
"""
import logging

from django.contrib.auth.decorators import login_required, user_passes_test
from django.db import connection
from django.http import HttpResponse, JsonResponse

from core.store import PROMOTION_EXECUTIONS, DocumentStore

from .exceptions import CampaignNotFound, PromotionError
from .executor import PromotionExecutor
from .tasks import execute_promotion_campaign

logger = logging.getLogger(__name__)


def is_school_admin(user):
    """Check if user is a school admin or superuser."""
    return user.is_superuser or getattr(user, 'is_school_admin', False)


def admin_required(view_func):
    """Decorator to require school admin or superuser."""
    return user_passes_test(is_school_admin, login_url='/')(view_func)


@login_required
@admin_required
def execute_campaign(request, campaign_id):
    """
    Queue execution of a promotion campaign.

    The preconditions are checked here so the caller gets an immediate 404/400;
    the records themselves are processed by a Celery worker.
    """
    if request.method != 'POST':
        return HttpResponse(status=405)

    executor = PromotionExecutor(DocumentStore())
    try:
        campaign, records = executor.prepare(campaign_id)
    except CampaignNotFound as e:
        return JsonResponse({'success': False, 'error': str(e)}, status=404)
    except PromotionError as e:
        return JsonResponse({'success': False, 'error': str(e)}, status=400)

    user = request.user
    task = execute_promotion_campaign.delay(
        campaign_id,
        connection.schema_name,
        user.pk,
        user.get_full_name() or user.get_username(),
    )
    logger.info(
        f"Queued promotion campaign {campaign_id} ({len(records)} records) "
        f"for {connection.schema_name} by user {user.pk}"
    )

    return JsonResponse({
        'success': True,
        'message': 'Promotion execution started',
        'campaign_id': campaign_id,
        'task_id': task.id,
        'total_students': len(records),
    }, status=202)


@login_required
@admin_required
def execution_status(request, execution_id):
    """Progress of a promotion execution, for polling."""
    execution = DocumentStore().get(PROMOTION_EXECUTIONS, execution_id)
    if execution is None:
        return JsonResponse({'success': False, 'error': 'Execution not found'}, status=404)
    return JsonResponse({'success': True, 'execution': execution})
