"""
Celery tasks for the promotions app.
Runs promotion campaign execution off the request cycle.
"""
import logging

from celery import shared_task
from django.db import InterfaceError, OperationalError
from django_tenants.utils import schema_context

from gradebook import config

from .exceptions import PromotionError


logger = logging.getLogger(__name__)

# Transient database errors that should trigger retry
RETRYABLE_EXCEPTIONS = (OperationalError, InterfaceError, ConnectionError, TimeoutError)


@shared_task(
    bind=True,
    max_retries=config.TASK_MAX_RETRIES,
    default_retry_delay=config.TASK_RETRY_DELAY,
    soft_time_limit=config.TASK_SOFT_TIME_LIMIT,
    time_limit=config.TASK_TIME_LIMIT,
)
def execute_promotion_campaign(self, campaign_id, tenant_schema, executed_by_id=None, executed_by_name=''):
    """
    Execute a promotion campaign for one tenant.

    A retry resumes the campaign: records executed by the interrupted run are
    no longer pending and are skipped.

    Args:
        campaign_id: ID of the promotion campaign document
        tenant_schema: Schema name for tenant context
        executed_by_id: ID of the user who started the execution
        executed_by_name: Display name of that user

    Returns:
        dict with success, execution_id and the execution summary
    """
    from core.store import DocumentStore
    from .executor import PromotionExecutor

    with schema_context(tenant_schema):
        executor = PromotionExecutor(DocumentStore())
        try:
            report = executor.execute(
                campaign_id,
                tenant_id=tenant_schema,
                executed_by=executed_by_id,
                executed_by_name=executed_by_name,
            )
        except PromotionError as e:
            # Non-retryable - nothing to execute
            logger.warning(f"Promotion campaign {campaign_id} not executed: {e}")
            return {'success': False, 'error': str(e)}
        except RETRYABLE_EXCEPTIONS as e:
            logger.warning(f"Retryable error executing promotion campaign {campaign_id}: {e}")
            raise self.retry(exc=e, countdown=config.TASK_RETRY_DELAY * (2 ** self.request.retries))

    return {
        'success': True,
        'execution_id': report.execution_id,
        'success_count': report.success_count,
        'failed_count': report.failed_count,
        'results': report.results,
    }
