import logging

from celery import shared_task

from .services import InvitationBridge

logger = logging.getLogger(__name__)


@shared_task
def expire_stale_invitations():
    """Scheduled by celery beat (see CELERY_BEAT_SCHEDULE)."""
    count = InvitationBridge().expire_invitations()
    logger.debug("expire_stale_invitations: %d updated", count)
    return count
