import logging
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.applications.models import Application
from apps.applications.services.lifecycle import ApplicationLifecycleManager
from apps.cores.exceptions import Conflict, Unauthorized, ValidationFailed
from apps.cores.utils import get_or_not_found
from apps.notifications.services.dispatcher import (
    SideEffectDispatcher,
    engagement_context,
    notify_safely,
)
from apps.users.models import Company, Freelance, Project
from .models import ProjectInvitation

logger = logging.getLogger(__name__)

INVITATION_COVER_LETTER = (
    "Application created automatically after accepting the invitation to \"{project_title}\"."
)


class InvitationBridge:
    """
    Turns an accepted project invitation into an application.

    The invitation is marked ACCEPTED first; if the application cannot be
    created it is put back to SENT and the original error propagates.
    """

    def __init__(self, applications=None, dispatcher=None):
        self.dispatcher = dispatcher or SideEffectDispatcher()
        self.applications = applications or ApplicationLifecycleManager(dispatcher=self.dispatcher)

    def get_invitation(self, invitation_id):
        return get_or_not_found(
            ProjectInvitation.objects.select_related("project", "freelance__user", "company__user"),
            "Invitation not found.",
            pk=invitation_id,
        )

    # ------------------------------------------------------------------
    # Company side
    # ------------------------------------------------------------------
    def create_invitation(self, project_id, freelance_id, company_id, message="", expires_at=None):
        project = get_or_not_found(Project, "Project not found.", pk=project_id)
        freelance = get_or_not_found(Freelance, "Freelance not found.", pk=freelance_id)
        company = get_or_not_found(Company, "Company not found.", pk=company_id)

        if project.company_id != company.id:
            raise ValidationFailed("You can only invite freelances to your own projects.")

        duplicate = ProjectInvitation.objects.filter(
            project=project, freelance=freelance, company=company
        ).exists()
        if duplicate:
            raise Conflict("This freelance has already been invited to this project.")

        try:
            with transaction.atomic():
                invitation = ProjectInvitation.objects.create(
                    project=project,
                    freelance=freelance,
                    company=company,
                    message=message or "",
                    expires_at=expires_at,
                )
        except IntegrityError:
            raise Conflict("This freelance has already been invited to this project.")

        logger.info(
            "Invitation %s sent by company %s to freelance %s for project %s",
            invitation.id, company.id, freelance.id, project.id,
        )
        return invitation

    def expire_invitations(self):
        count = ProjectInvitation.objects.filter(
            status__in=ProjectInvitation.OPEN_STATUSES,
            expires_at__lt=timezone.now(),
        ).update(status=ProjectInvitation.EXPIRED)
        if count:
            logger.info("Expired %d stale invitation(s)", count)
        return count

    # ------------------------------------------------------------------
    # Freelance side
    # ------------------------------------------------------------------
    def mark_invitation_viewed(self, invitation_id, freelance_id):
        invitation = self._for_freelance(invitation_id, freelance_id)
        if invitation.status == ProjectInvitation.VIEWED:
            return invitation
        if invitation.status != ProjectInvitation.SENT:
            raise Conflict(f"This invitation is already {invitation.status}.")

        self._compare_and_set(invitation, ProjectInvitation.VIEWED)
        return invitation

    def accept_invitation(self, invitation_id, freelance_id):
        invitation = self._open_invitation(invitation_id, freelance_id)
        self._compare_and_set(
            invitation, ProjectInvitation.ACCEPTED, responded_at=timezone.now()
        )

        try:
            application = self._application_for(invitation)
        except Exception:
            ProjectInvitation.objects.filter(
                pk=invitation.pk, status=ProjectInvitation.ACCEPTED
            ).update(status=ProjectInvitation.SENT, responded_at=None)
            invitation.status = ProjectInvitation.SENT
            invitation.responded_at = None
            logger.warning(
                "Invitation %s reset to sent: the application could not be created",
                invitation.id,
            )
            raise

        logger.info(
            "Invitation %s accepted, application %s", invitation.id, application.id
        )
        notify_safely(
            self.dispatcher,
            "invitation.accepted",
            [invitation.company],
            engagement_context(invitation.project, invitation.freelance, invitation.company),
            {
                "invitation_id": str(invitation.id),
                "application_id": str(application.id),
                "project_id": str(invitation.project_id),
            },
        )
        return {"invitation": invitation, "application": application}

    def decline_invitation(self, invitation_id, freelance_id):
        invitation = self._open_invitation(invitation_id, freelance_id)
        self._compare_and_set(
            invitation, ProjectInvitation.DECLINED, responded_at=timezone.now()
        )

        logger.info("Invitation %s declined", invitation.id)
        notify_safely(
            self.dispatcher,
            "invitation.declined",
            [invitation.company],
            engagement_context(invitation.project, invitation.freelance, invitation.company),
            {"invitation_id": str(invitation.id), "project_id": str(invitation.project_id)},
        )
        return invitation

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _for_freelance(self, invitation_id, freelance_id):
        invitation = self.get_invitation(invitation_id)
        if str(invitation.freelance_id) != str(freelance_id):
            raise Unauthorized("This invitation was sent to another freelance.")
        return invitation

    def _open_invitation(self, invitation_id, freelance_id):
        invitation = self._for_freelance(invitation_id, freelance_id)
        if invitation.status not in ProjectInvitation.OPEN_STATUSES:
            raise Conflict(f"This invitation is already {invitation.status}.")
        if invitation.is_expired:
            raise Conflict("This invitation has expired.")
        return invitation

    def _compare_and_set(self, invitation, new_status, **fields):
        with transaction.atomic():
            updated = ProjectInvitation.objects.filter(
                pk=invitation.pk, status=invitation.status
            ).update(status=new_status, **fields)
        if not updated:
            raise Conflict("The invitation was modified concurrently; please retry.")

        invitation.status = new_status
        for name, value in fields.items():
            setattr(invitation, name, value)
        return invitation

    def _application_for(self, invitation):
        latest = (
            Application.objects
            .filter(freelance_id=invitation.freelance_id, project_id=invitation.project_id)
            .order_by("-submission_date")
            .first()
        )
        if latest is not None and latest.status in Application.ACTIVE_STATUSES:
            return latest

        if latest is not None:
            # Resubmit what the freelance wrote last time
            rate, cover_letter = latest.proposed_rate, latest.cover_letter
        else:
            rate, cover_letter = Decimal("0"), ""

        return self.applications.create_application(
            invitation.project_id,
            invitation.freelance_id,
            proposed_rate=rate,
            cover_letter=cover_letter or INVITATION_COVER_LETTER.format(project_title=invitation.project.title),
        )
