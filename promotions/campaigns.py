"""
Promotion campaign lifecycle.

    draft -> open -> in_review -> approved -> executing -> executed

A campaign under review can be sent back to open, and any campaign that has
not been executed yet can be cancelled.
"""
import logging

from core.store import PROMOTION_CAMPAIGNS

from .choices import CampaignStatus
from .exceptions import CampaignNotFound, InvalidCampaignTransition

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    CampaignStatus.DRAFT: {CampaignStatus.OPEN, CampaignStatus.CANCELLED},
    CampaignStatus.OPEN: {CampaignStatus.IN_REVIEW, CampaignStatus.CANCELLED},
    CampaignStatus.IN_REVIEW: {
        CampaignStatus.APPROVED, CampaignStatus.OPEN, CampaignStatus.CANCELLED,
    },
    CampaignStatus.APPROVED: {CampaignStatus.EXECUTING, CampaignStatus.CANCELLED},
    CampaignStatus.EXECUTING: {CampaignStatus.EXECUTED, CampaignStatus.CANCELLED},
    CampaignStatus.EXECUTED: set(),
    CampaignStatus.CANCELLED: set(),
}


def can_transition(current, new):
    return new in ALLOWED_TRANSITIONS.get(current, set())


def transition_campaign(store, campaign_id, new_status, actor_id=None):
    """
    Move a campaign to a new status.

    Raises:
        CampaignNotFound: if the campaign does not exist
        InvalidCampaignTransition: if the move is not allowed from the current status
    """
    campaign = store.get(PROMOTION_CAMPAIGNS, campaign_id)
    if campaign is None:
        raise CampaignNotFound(campaign_id)

    current = campaign.get('status', CampaignStatus.DRAFT)
    if not can_transition(current, new_status):
        raise InvalidCampaignTransition(current, new_status)

    fields = {'status': new_status, 'updated_at': store.now()}
    if actor_id is not None:
        fields['updated_by'] = actor_id
    store.update(PROMOTION_CAMPAIGNS, campaign_id, fields)

    logger.info(f"Promotion campaign {campaign_id}: {current} -> {new_status}")
    return {**campaign, **fields}


def cancel_campaign(store, campaign_id, actor_id=None):
    """Cancel a campaign that has not been executed yet."""
    return transition_campaign(store, campaign_id, CampaignStatus.CANCELLED, actor_id=actor_id)
