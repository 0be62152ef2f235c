import logging
from decimal import Decimal, InvalidOperation

from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.applications.models import Application
from apps.applications.services.conversations import ConversationService
from apps.cores.exceptions import Conflict, NotFound, ValidationFailed
from apps.cores.utils import get_or_not_found
from apps.notifications.services.dispatcher import (
    SideEffectDispatcher,
    engagement_context,
    notify_safely,
)
from apps.users.models import Freelance, Project

logger = logging.getLogger(__name__)


# Source status -> statuses reachable through update_application_status
ALLOWED_TRANSITIONS = {
    Application.SUBMITTED: {
        Application.UNDER_REVIEW,
        Application.ACCEPTED,
        Application.REJECTED,
        Application.WITHDRAWN,
    },
    Application.UNDER_REVIEW: {
        Application.ACCEPTED,
        Application.REJECTED,
        Application.WITHDRAWN,
    },
}

# Statuses that stamp response_date
RESPONSE_STATUSES = {Application.ACCEPTED, Application.REJECTED, Application.WITHDRAWN}

# Statuses the acceptance cascade leaves untouched
CASCADE_EXEMPT = (Application.REJECTED, Application.ACCEPTED, Application.WITHDRAWN)


def _validate_rate(proposed_rate):
    if proposed_rate is None:
        return None
    try:
        rate = Decimal(str(proposed_rate))
    except (InvalidOperation, ValueError):
        raise ValidationFailed("Proposed rate must be a number.")
    if rate < 0:
        raise ValidationFailed("Proposed rate cannot be negative.")
    return rate


class ApplicationLifecycleManager:
    """
    Owns the application state machine:
        SUBMITTED -> UNDER_REVIEW -> ACCEPTED | REJECTED | WITHDRAWN

    Every transition is a check-and-set against the status just read, so a
    concurrent writer makes the losing call fail with Conflict instead of
    silently overwriting.
    """

    def __init__(self, dispatcher=None, conversations=None):
        self.dispatcher = dispatcher or SideEffectDispatcher()
        self.conversations = conversations or ConversationService()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_application(self, application_id):
        return get_or_not_found(
            Application.objects.select_related("project__company__user", "freelance__user"),
            "Application not found.",
            pk=application_id,
        )

    def _owned_application(self, application_id, freelance_id):
        application = self.get_application(application_id)
        # Someone else's application is reported as missing
        if str(application.freelance_id) != str(freelance_id):
            raise NotFound("Application not found.")
        return application

    # ------------------------------------------------------------------
    # Creation / reactivation
    # ------------------------------------------------------------------
    def create_application(self, project_id, freelance_id, proposed_rate=None, cover_letter=""):
        project = get_or_not_found(
            Project.objects.select_related("company__user"), "Project not found.", pk=project_id
        )
        freelance = get_or_not_found(
            Freelance.objects.select_related("user"), "Freelance not found.", pk=freelance_id
        )

        rate = _validate_rate(proposed_rate)
        cover_letter = cover_letter or ""

        latest = (
            Application.objects
            .filter(freelance=freelance, project=project)
            .order_by("-submission_date")
            .first()
        )

        if latest is not None and latest.status in Application.ACTIVE_STATUSES:
            raise Conflict("An application already exists for this project.")

        if latest is not None:
            return self._reactivate(latest, rate, cover_letter)

        try:
            with transaction.atomic():
                application = Application.objects.create(
                    project=project,
                    freelance=freelance,
                    proposed_rate=rate,
                    cover_letter=cover_letter,
                    status=Application.SUBMITTED,
                )
        except IntegrityError:
            raise Conflict("An application already exists for this project.")

        logger.info(
            "Application %s submitted by freelance %s on project %s",
            application.id, freelance.id, project.id,
        )

        notify_safely(
            self.dispatcher,
            "application.created",
            [project.company],
            engagement_context(project, freelance),
            {"application_id": str(application.id), "project_id": str(project.id)},
        )
        return application

    def _reactivate(self, previous, rate, cover_letter):
        now = timezone.now()
        try:
            with transaction.atomic():
                updated = Application.objects.filter(
                    pk=previous.pk, status=previous.status
                ).update(
                    status=Application.SUBMITTED,
                    proposed_rate=rate,
                    cover_letter=cover_letter,
                    submission_date=now,
                    response_date=None,
                )
        except IntegrityError:
            raise Conflict("An application already exists for this project.")

        if not updated:
            raise Conflict("The application changed while it was being resubmitted.")

        logger.info(
            "Application %s reactivated from %s (no notification sent)",
            previous.id, previous.status,
        )
        return self.get_application(previous.pk)

    # ------------------------------------------------------------------
    # Freelance-side operations
    # ------------------------------------------------------------------
    def withdraw_application(self, application_id, freelance_id):
        application = self._owned_application(application_id, freelance_id)

        if application.status in (Application.ACCEPTED, Application.REJECTED):
            raise Conflict(f"Cannot withdraw an application that is {application.status}.")
        if application.status == Application.WITHDRAWN:
            raise Conflict("This application is already withdrawn.")

        with transaction.atomic():
            self._compare_and_set(
                application,
                Application.WITHDRAWN,
                response_date=timezone.now(),
            )

        notify_safely(
            self.dispatcher,
            "application.withdrawn",
            [application.project.company],
            engagement_context(application.project, application.freelance),
            {"application_id": str(application.id), "project_id": str(application.project_id)},
        )
        return application

    def update_application_content(self, application_id, freelance_id, proposed_rate=None, cover_letter=None):
        application = self._owned_application(application_id, freelance_id)

        if application.status != Application.SUBMITTED:
            raise Conflict("Only a submitted application can be edited.")

        fields = {}
        if proposed_rate is not None:
            fields["proposed_rate"] = _validate_rate(proposed_rate)
        if cover_letter is not None:
            fields["cover_letter"] = cover_letter
        if not fields:
            return application

        with transaction.atomic():
            self._compare_and_set(application, Application.SUBMITTED, **fields)
        return application

    # ------------------------------------------------------------------
    # Company-side transitions
    # ------------------------------------------------------------------
    def update_application_status(self, application_id, new_status, response_date=None):
        valid_targets = {
            Application.UNDER_REVIEW,
            Application.ACCEPTED,
            Application.REJECTED,
            Application.WITHDRAWN,
        }
        if new_status not in valid_targets:
            raise ValidationFailed(f"Invalid application status: {new_status!r}.")

        application = self.get_application(application_id)
        old_status = application.status

        if new_status not in ALLOWED_TRANSITIONS.get(old_status, ()):
            raise Conflict(f"Cannot move an application from {old_status} to {new_status}.")

        fields = {}
        if new_status in RESPONSE_STATUSES:
            fields["response_date"] = response_date or timezone.now()

        project = application.project
        cascade = new_status == Application.ACCEPTED and not project.allow_multiple_hires
        auto_rejected = []

        with transaction.atomic():
            if cascade:
                # Serialise acceptances on the same project
                Project.objects.select_for_update().get(pk=project.pk)
                already_hired = Application.objects.filter(
                    project_id=project.pk, status=Application.ACCEPTED
                ).exclude(pk=application.pk).exists()
                if already_hired:
                    raise Conflict("Another application has already been accepted for this project.")

            self._compare_and_set(application, new_status, expected=old_status, **fields)

            if cascade:
                auto_rejected = self._reject_competitors(application)

        logger.info("Application %s moved %s -> %s", application.id, old_status, new_status)

        if new_status in (Application.ACCEPTED, Application.REJECTED):
            event = "application.accepted" if new_status == Application.ACCEPTED else "application.rejected"
            notify_safely(
                self.dispatcher,
                event,
                [application.freelance],
                engagement_context(project, application.freelance),
                {"application_id": str(application.id), "project_id": str(project.pk)},
            )

        if cascade:
            self._open_conversation(application)
            for peer in auto_rejected:
                notify_safely(
                    self.dispatcher,
                    "application.auto_rejected",
                    [peer.freelance],
                    engagement_context(project, peer.freelance),
                    {"application_id": str(peer.id), "project_id": str(project.pk)},
                )

        return application

    def review_application(self, application_id):
        return self.update_application_status(application_id, Application.UNDER_REVIEW)

    def accept_application(self, application_id, response_date=None):
        return self.update_application_status(application_id, Application.ACCEPTED, response_date)

    def reject_application(self, application_id, response_date=None):
        return self.update_application_status(application_id, Application.REJECTED, response_date)

    def delete_application(self, application_id):
        application = get_or_not_found(Application, "Application not found.", pk=application_id)
        application.delete()
        logger.info("Application %s deleted", application_id)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _compare_and_set(self, application, new_status, expected=None, **fields):
        """
        UPDATE ... WHERE id = <id> AND status = <expected>.
        Mirrors the written values onto `application` when the row matched.
        """
        expected = expected or application.status
        updated = Application.objects.filter(
            pk=application.pk, status=expected
        ).update(status=new_status, **fields)
        if not updated:
            raise Conflict("The application was modified concurrently; please retry.")

        application.status = new_status
        for name, value in fields.items():
            setattr(application, name, value)
        return application

    def _reject_competitors(self, accepted):
        stamp = timezone.now()
        competitors = (
            Application.objects
            .filter(project_id=accepted.project_id)
            .exclude(pk=accepted.pk)
            .exclude(status__in=CASCADE_EXEMPT)
        )
        count = competitors.update(status=Application.REJECTED, response_date=stamp)
        if not count:
            return []

        logger.info(
            "Auto-rejected %d competing application(s) on project %s",
            count, accepted.project_id,
        )
        return list(
            Application.objects
            .select_related("freelance__user")
            .filter(
                project_id=accepted.project_id,
                status=Application.REJECTED,
                response_date=stamp,
            )
            .exclude(pk=accepted.pk)
        )

    def _open_conversation(self, application):
        try:
            self.conversations.create_or_get(
                application.freelance_id,
                application.project.company_id,
                application.id,
            )
        except Exception:
            logger.exception(
                "Could not open a conversation for accepted application %s",
                application.id,
            )
