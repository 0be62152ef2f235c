import logging

from apps.applications.models import Conversation

logger = logging.getLogger(__name__)


class ConversationService:

    def create_or_get(self, freelance_id, company_id, application_id=None):
        """
        Return the conversation scoped to this application, creating it
        on first use.
        """
        if application_id:
            conversation, created = Conversation.objects.get_or_create(
                application_id=application_id,
                defaults={"freelance_id": freelance_id, "company_id": company_id},
            )
        else:
            conversation, created = Conversation.objects.get_or_create(
                freelance_id=freelance_id,
                company_id=company_id,
                application__isnull=True,
            )

        if created:
            logger.info(
                "Conversation %s opened between company %s and freelance %s",
                conversation.id, company_id, freelance_id,
            )
        return conversation
