import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

from django.conf import settings
from django.db import transaction

from apps.notifications.constants import EVENTS
from apps.notifications.services.create_notifications import NotificationSink
from apps.notifications.tasks import send_templated_email

logger = logging.getLogger(__name__)

# Shared so that a hung broker call never blocks the caller past the timeout
_EXECUTOR = ThreadPoolExecutor(max_workers=4, thread_name_prefix="side-effects")


def engagement_context(project, freelance, company=None):
    """Template variables shared by every engagement event."""
    company = company or project.company
    return {
        "project_title": project.title,
        "freelance_name": freelance.full_name,
        "company_name": company.display_name,
    }


def notify_safely(dispatcher, event, recipients, context=None, metadata=None):
    """
    Call-site guard for services: the state change has already committed,
    so a dispatcher that raises is logged and reported as a failed dispatch.
    """
    try:
        return dispatcher.notify(event, recipients, context, metadata)
    except Exception:
        logger.exception("Dispatcher raised for event %s", event)
        return False


class EmailSender:
    """Fire-and-forget: hands the email to the Celery worker."""

    def send(self, to, template_name, template_args, subject):
        send_templated_email.delay(to, template_name, template_args, subject)


class SideEffectDispatcher:
    """
    Best-effort fan-out of one domain event to its recipients:
    - one Notification row, linked to every recipient
    - a real-time push per recipient
    - one email per recipient

    Recipients are profile objects exposing `user_id` and `contact_email`
    (Company, Freelance). Nothing here raises: every failure is logged and
    reported through the boolean return value.
    """

    def __init__(self, sink=None, mailer=None, timeout=None):
        self.sink = sink or NotificationSink()
        self.mailer = mailer or EmailSender()
        self.timeout = timeout or settings.SIDE_EFFECT_TIMEOUT_SECONDS

    def notify(self, event, recipients, context=None, metadata=None):
        template = EVENTS.get(event)
        if template is None:
            logger.error("Unknown notification event %r", event)
            return False

        context = dict(context or {})
        recipients = self._unique(recipients)
        if not recipients:
            return True

        try:
            title = template.title.format(**context)
            message = template.message.format(**context)
            subject = template.subject.format(**context)
        except (KeyError, IndexError) as e:
            logger.error("Missing context %s for event %s", e, event)
            return False

        ok = True
        data = {"event": event, **(metadata or {})}

        notification = None
        try:
            with transaction.atomic():
                notification = self.sink.create_notification(
                    title, message, template.notif_type, data
                )
                for recipient in recipients:
                    self.sink.link_to_user(recipient.user_id, notification.id)
        except Exception:
            logger.exception("Failed to record notification for event %s", event)
            notification = None
            ok = False

        if notification is not None:
            for recipient in recipients:
                try:
                    self.sink.push(recipient.user_id, notification)
                except Exception:
                    logger.warning(
                        "Real-time push of %s to user %s failed",
                        event, recipient.user_id, exc_info=True,
                    )
                    ok = False

        for recipient in recipients:
            email = recipient.contact_email
            if not email:
                continue
            sent = self._run_bounded(
                f"email {event} to {email}",
                self.mailer.send,
                email,
                template.email_template,
                {**context, "title": title, "message": message},
                subject,
            )
            ok = ok and sent

        if ok:
            logger.info("Dispatched %s to %d recipient(s)", event, len(recipients))
        return ok

    def _run_bounded(self, label, fn, *args):
        future = _EXECUTOR.submit(fn, *args)
        try:
            future.result(timeout=self.timeout)
            return True
        except FutureTimeout:
            logger.warning("%s timed out after %ss", label, self.timeout)
        except Exception:
            logger.exception("%s failed", label)
        return False

    @staticmethod
    def _unique(recipients):
        seen = set()
        unique = []
        for recipient in recipients or []:
            if recipient is None or recipient.user_id in seen:
                continue
            seen.add(recipient.user_id)
            unique.append(recipient)
        return unique
