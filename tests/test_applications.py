"""Tests for the application lifecycle.

Covers:
  - Submission, duplicate detection and reactivation of dead applications
  - Withdrawal and content edits (owner only)
  - Status transitions as check-and-set
  - Single-hire acceptance cascade (auto-rejection + conversation)
  - Read side: describe_application, status counts
"""
import uuid
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from django.db import IntegrityError, transaction

from apps.applications.models import Application, Conversation
from apps.applications.selectors import application_status_counts
from apps.cores.exceptions import Conflict, NotFound, ValidationFailed
from apps.cores.moderation import KeywordModerator
from apps.engagement.orchestrator import get_orchestrator
from apps.notifications.services.dispatcher import SideEffectDispatcher
from tests.conftest import notifications_of

pytestmark = pytest.mark.django_db


# =============================================================================
# SUBMISSION
# =============================================================================

class TestCreateApplication:

    def test_creates_submitted_application(self, orchestrator, project, freelance):
        app = orchestrator.create_application(project.id, freelance.id, Decimal("450"), "Hire me")

        assert app.status == Application.SUBMITTED
        assert app.proposed_rate == Decimal("450")
        assert app.response_date is None

    def test_notifies_and_emails_company(self, orchestrator, project, freelance, company, mailoutbox):
        orchestrator.create_application(project.id, freelance.id, 300, "Hello")

        assert notifications_of(company, "APPLICATION_SUBMITTED") == 1
        assert len(mailoutbox) == 1
        assert mailoutbox[0].to == ["jobs@acme.example"]
        assert "Data pipeline" in mailoutbox[0].subject

    def test_duplicate_active_application_conflicts(self, orchestrator, project, freelance):
        orchestrator.create_application(project.id, freelance.id, 300, "First")

        with pytest.raises(Conflict):
            orchestrator.create_application(project.id, freelance.id, 350, "Second")

        assert Application.objects.filter(project=project, freelance=freelance).count() == 1

    def test_negative_rate_is_rejected(self, orchestrator, project, freelance):
        with pytest.raises(ValidationFailed):
            orchestrator.create_application(project.id, freelance.id, -1, "")

        assert not Application.objects.exists()

    def test_missing_project(self, orchestrator, freelance):
        with pytest.raises(NotFound):
            orchestrator.create_application(uuid.uuid4(), freelance.id, 10, "")

    def test_malformed_freelance_id(self, orchestrator, project):
        with pytest.raises(NotFound):
            orchestrator.create_application(project.id, "not-a-uuid", 10, "")

    def test_database_allows_one_active_application_per_pair(self, project, freelance):
        Application.objects.create(project=project, freelance=freelance)

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Application.objects.create(project=project, freelance=freelance)

    def test_database_allows_dead_duplicates(self, project, freelance):
        Application.objects.create(project=project, freelance=freelance, status=Application.REJECTED)
        Application.objects.create(project=project, freelance=freelance, status=Application.WITHDRAWN)
        Application.objects.create(project=project, freelance=freelance)

        assert Application.objects.count() == 3


class TestReactivation:

    def test_resubmission_after_withdrawal_reuses_row(self, orchestrator, project, freelance):
        first = orchestrator.create_application(project.id, freelance.id, 300, "v1")
        orchestrator.withdraw_application(first.id, freelance.id)

        again = orchestrator.create_application(project.id, freelance.id, 500, "v2")

        assert again.id == first.id
        assert again.status == Application.SUBMITTED
        assert again.response_date is None
        assert again.proposed_rate == Decimal("500")
        assert again.cover_letter == "v2"
        assert Application.objects.count() == 1

    def test_resubmission_after_rejection_reuses_row(self, orchestrator, project, freelance):
        first = orchestrator.create_application(project.id, freelance.id, 300, "v1")
        orchestrator.reject_application(first.id)

        again = orchestrator.create_application(project.id, freelance.id, 320, "v2")

        assert again.id == first.id
        assert again.status == Application.SUBMITTED
        assert Application.objects.count() == 1

    def test_reactivation_sends_no_notification(self, orchestrator, project, freelance, company):
        first = orchestrator.create_application(project.id, freelance.id, 300, "v1")
        orchestrator.withdraw_application(first.id, freelance.id)

        orchestrator.create_application(project.id, freelance.id, 300, "v2")

        assert notifications_of(company, "APPLICATION_SUBMITTED") == 1

    def test_reactivation_loses_race(self, orchestrator, project, freelance):
        first = orchestrator.create_application(project.id, freelance.id, 300, "v1")
        orchestrator.withdraw_application(first.id, freelance.id)
        stale = Application.objects.get(pk=first.id)

        # Another request reactivated it in between
        Application.objects.filter(pk=first.id).update(status=Application.SUBMITTED)

        with pytest.raises(Conflict):
            orchestrator.applications._reactivate(stale, Decimal("1"), "late")


# =============================================================================
# FREELANCE-SIDE OPERATIONS
# =============================================================================

class TestWithdraw:

    def test_withdraw_submitted(self, orchestrator, project, freelance, company):
        app = orchestrator.create_application(project.id, freelance.id, 300, "")

        orchestrator.withdraw_application(app.id, freelance.id)

        app.refresh_from_db()
        assert app.status == Application.WITHDRAWN
        assert app.response_date is not None
        assert notifications_of(company, "APPLICATION_WITHDRAWN") == 1

    def test_withdraw_under_review(self, orchestrator, project, freelance):
        app = orchestrator.create_application(project.id, freelance.id, 300, "")
        orchestrator.review_application(app.id)

        orchestrator.withdraw_application(app.id, freelance.id)

        app.refresh_from_db()
        assert app.status == Application.WITHDRAWN

    def test_other_freelance_sees_not_found(self, orchestrator, project, freelance, make_freelance):
        app = orchestrator.create_application(project.id, freelance.id, 300, "")
        intruder = make_freelance("Eve", "Mallory")

        with pytest.raises(NotFound):
            orchestrator.withdraw_application(app.id, intruder.id)

        app.refresh_from_db()
        assert app.status == Application.SUBMITTED

    @pytest.mark.parametrize("final", [Application.ACCEPTED, Application.REJECTED])
    def test_withdraw_after_decision_conflicts(self, orchestrator, project, freelance, final):
        app = orchestrator.create_application(project.id, freelance.id, 300, "")
        orchestrator.update_application_status(app.id, final)

        with pytest.raises(Conflict):
            orchestrator.withdraw_application(app.id, freelance.id)

        app.refresh_from_db()
        assert app.status == final

    def test_withdraw_twice_conflicts(self, orchestrator, project, freelance):
        app = orchestrator.create_application(project.id, freelance.id, 300, "")
        orchestrator.withdraw_application(app.id, freelance.id)

        with pytest.raises(Conflict):
            orchestrator.withdraw_application(app.id, freelance.id)


class TestUpdateContent:

    def test_edit_rate_and_letter(self, orchestrator, project, freelance):
        app = orchestrator.create_application(project.id, freelance.id, 300, "draft")

        orchestrator.update_application_content(app.id, freelance.id, proposed_rate=350, cover_letter="final")

        app.refresh_from_db()
        assert app.proposed_rate == Decimal("350")
        assert app.cover_letter == "final"

    def test_only_submitted_can_be_edited(self, orchestrator, project, freelance):
        app = orchestrator.create_application(project.id, freelance.id, 300, "draft")
        orchestrator.review_application(app.id)

        with pytest.raises(Conflict):
            orchestrator.update_application_content(app.id, freelance.id, cover_letter="late")

    def test_negative_rate(self, orchestrator, project, freelance):
        app = orchestrator.create_application(project.id, freelance.id, 300, "draft")

        with pytest.raises(ValidationFailed):
            orchestrator.update_application_content(app.id, freelance.id, proposed_rate=-5)

    def test_non_owner(self, orchestrator, project, freelance, make_freelance):
        app = orchestrator.create_application(project.id, freelance.id, 300, "draft")

        with pytest.raises(NotFound):
            orchestrator.update_application_content(app.id, make_freelance().id, cover_letter="x")


# =============================================================================
# COMPANY-SIDE TRANSITIONS
# =============================================================================

class TestStatusTransitions:

    def test_unknown_target_status(self, orchestrator, project, freelance):
        app = orchestrator.create_application(project.id, freelance.id, 300, "")

        with pytest.raises(ValidationFailed):
            orchestrator.update_application_status(app.id, Application.SUBMITTED)

    def test_review_does_not_notify_freelance(self, orchestrator, project, freelance):
        app = orchestrator.create_application(project.id, freelance.id, 300, "")

        orchestrator.review_application(app.id)

        app.refresh_from_db()
        assert app.status == Application.UNDER_REVIEW
        assert app.response_date is None
        assert not freelance.user.notifications.exists()

    def test_accept_notifies_freelance(self, orchestrator, project, freelance, mailoutbox):
        app = orchestrator.create_application(project.id, freelance.id, 300, "")

        orchestrator.accept_application(app.id)

        app.refresh_from_db()
        assert app.status == Application.ACCEPTED
        assert app.response_date is not None
        assert notifications_of(freelance, "APPLICATION_ACCEPTED") == 1
        assert freelance.user.email in [m.to[0] for m in mailoutbox]

    def test_reject_notifies_freelance(self, orchestrator, project, freelance):
        app = orchestrator.create_application(project.id, freelance.id, 300, "")

        orchestrator.reject_application(app.id)

        assert notifications_of(freelance, "APPLICATION_REJECTED") == 1

    def test_explicit_response_date_is_kept(self, orchestrator, project, freelance):
        from django.utils import timezone
        app = orchestrator.create_application(project.id, freelance.id, 300, "")
        when = timezone.now().replace(microsecond=0)

        orchestrator.reject_application(app.id, response_date=when)

        app.refresh_from_db()
        assert app.response_date == when

    @pytest.mark.parametrize("final", [Application.ACCEPTED, Application.REJECTED, Application.WITHDRAWN])
    def test_final_states_cannot_move(self, orchestrator, project, freelance, final):
        app = orchestrator.create_application(project.id, freelance.id, 300, "")
        Application.objects.filter(pk=app.id).update(status=final)

        with pytest.raises(Conflict):
            orchestrator.update_application_status(app.id, Application.UNDER_REVIEW)

    def test_stale_read_loses(self, orchestrator, project, freelance):
        app = orchestrator.create_application(project.id, freelance.id, 300, "")
        stale = orchestrator.applications.get_application(app.id)
        orchestrator.withdraw_application(app.id, freelance.id)

        manager = orchestrator.applications
        with patch.object(manager, "get_application", return_value=stale):
            with pytest.raises(Conflict):
                manager.update_application_status(app.id, Application.REJECTED)

        app.refresh_from_db()
        assert app.status == Application.WITHDRAWN


class TestAcceptanceCascade:

    def _apply_all(self, orchestrator, project, freelances):
        return [
            orchestrator.create_application(project.id, f.id, 100 + i, "")
            for i, f in enumerate(freelances)
        ]

    def test_single_hire_rejects_every_open_competitor(self, orchestrator, project, make_freelance):
        a, b, c, d = (make_freelance(f"F{i}", "X") for i in range(4))
        app_a, app_b, app_c, app_d = self._apply_all(orchestrator, project, [a, b, c, d])
        orchestrator.review_application(app_b.id)
        orchestrator.withdraw_application(app_c.id, c.id)
        orchestrator.reject_application(app_d.id)

        orchestrator.accept_application(app_a.id)

        statuses = dict(Application.objects.values_list("id", "status"))
        assert statuses[app_a.id] == Application.ACCEPTED
        assert statuses[app_b.id] == Application.REJECTED
        assert statuses[app_c.id] == Application.WITHDRAWN
        assert statuses[app_d.id] == Application.REJECTED

        assert notifications_of(b, "APPLICATION_AUTO_REJECTED") == 1
        assert notifications_of(c, "APPLICATION_AUTO_REJECTED") == 0
        assert notifications_of(d, "APPLICATION_AUTO_REJECTED") == 0
        assert notifications_of(a, "APPLICATION_AUTO_REJECTED") == 0

    def test_peers_share_one_response_date(self, orchestrator, project, make_freelance):
        freelances = [make_freelance(f"F{i}", "Y") for i in range(3)]
        winner, *peers = self._apply_all(orchestrator, project, freelances)

        orchestrator.accept_application(winner.id)

        stamps = set(
            Application.objects.filter(pk__in=[p.id for p in peers]).values_list("response_date", flat=True)
        )
        assert len(stamps) == 1

    def test_conversation_opened_for_winner(self, orchestrator, project, freelance, company):
        app = orchestrator.create_application(project.id, freelance.id, 300, "")

        orchestrator.accept_application(app.id)

        conversation = Conversation.objects.get(application=app)
        assert conversation.freelance_id == freelance.id
        assert conversation.company_id == company.id

    def test_multi_hire_project_keeps_competitors(self, orchestrator, make_project, make_freelance):
        project = make_project(title="Big team", allow_multiple_hires=True)
        a, b = make_freelance("A", "A"), make_freelance("B", "B")
        app_a, app_b = self._apply_all(orchestrator, project, [a, b])

        orchestrator.accept_application(app_a.id)
        orchestrator.accept_application(app_b.id)

        assert Application.objects.filter(status=Application.ACCEPTED).count() == 2
        assert not Conversation.objects.exists()

    def test_second_acceptance_on_single_hire_conflicts(self, orchestrator, project, make_freelance):
        a, b = make_freelance("A", "A"), make_freelance("B", "B")
        app_a, app_b = self._apply_all(orchestrator, project, [a, b])
        Application.objects.filter(pk=app_b.id).update(status=Application.ACCEPTED)

        with pytest.raises(Conflict):
            orchestrator.accept_application(app_a.id)

        app_a.refresh_from_db()
        assert app_a.status == Application.SUBMITTED

    def test_conversation_failure_does_not_undo_acceptance(self, project, make_freelance):
        conversations = MagicMock()
        conversations.create_or_get.side_effect = RuntimeError("chat service down")
        orchestrator = get_orchestrator(
            conversations=conversations, moderator=KeywordModerator([])
        )
        a, b = make_freelance("A", "A"), make_freelance("B", "B")
        app_a, app_b = self._apply_all(orchestrator, project, [a, b])

        orchestrator.accept_application(app_a.id)

        app_a.refresh_from_db()
        app_b.refresh_from_db()
        assert app_a.status == Application.ACCEPTED
        assert app_b.status == Application.REJECTED
        assert notifications_of(b, "APPLICATION_AUTO_REJECTED") == 1
        conversations.create_or_get.assert_called_once_with(a.id, project.company_id, app_a.id)

    def test_failing_sink_and_mailer_do_not_undo_acceptance(self, project, make_freelance):
        sink, mailer = MagicMock(), MagicMock()
        sink.create_notification.side_effect = RuntimeError("db down")
        mailer.send.side_effect = OSError("smtp refused")
        orchestrator = get_orchestrator(
            dispatcher=SideEffectDispatcher(sink=sink, mailer=mailer),
            moderator=KeywordModerator([]),
        )
        a, b = make_freelance("A", "A"), make_freelance("B", "B")
        app_a, app_b = self._apply_all(orchestrator, project, [a, b])

        accepted = orchestrator.accept_application(app_a.id)

        assert accepted.status == Application.ACCEPTED
        app_b.refresh_from_db()
        assert app_b.status == Application.REJECTED
        assert Conversation.objects.filter(application_id=app_a.id).exists()
        assert mailer.send.called

    def test_raising_dispatcher_does_not_undo_acceptance(self, project, make_freelance):
        dispatcher = MagicMock()
        dispatcher.notify.side_effect = RuntimeError("dispatcher crashed")
        orchestrator = get_orchestrator(dispatcher=dispatcher, moderator=KeywordModerator([]))
        a, b = make_freelance("A", "A"), make_freelance("B", "B")
        app_a, app_b = self._apply_all(orchestrator, project, [a, b])

        accepted = orchestrator.accept_application(app_a.id)

        assert accepted.status == Application.ACCEPTED
        app_b.refresh_from_db()
        assert app_b.status == Application.REJECTED
        events = [c.args[0] for c in dispatcher.notify.call_args_list]
        assert events.count("application.auto_rejected") == 1


# =============================================================================
# READ SIDE / ADMIN
# =============================================================================

class TestReadSide:

    def test_describe_application(self, orchestrator, project, freelance):
        app = orchestrator.create_application(project.id, freelance.id, 300, "Hi")

        data = orchestrator.describe_application(app.id)

        assert data["status"] == Application.SUBMITTED
        assert data["project"]["title"] == "Data pipeline"
        assert data["project"]["company"]["name"] == "Acme"
        assert data["freelance"]["full_name"] == "Ada Lovelace"
        assert data["conversation_id"] is None

    def test_status_counts_are_zero_filled(self, orchestrator, project, make_freelance):
        a, b = make_freelance("A", "A"), make_freelance("B", "B")
        app_a = orchestrator.create_application(project.id, a.id, 1, "")
        orchestrator.create_application(project.id, b.id, 1, "")
        orchestrator.withdraw_application(app_a.id, a.id)

        counts = application_status_counts(project_id=project.id)

        assert counts == {
            Application.SUBMITTED: 1,
            Application.UNDER_REVIEW: 0,
            Application.ACCEPTED: 0,
            Application.REJECTED: 0,
            Application.WITHDRAWN: 1,
            "total": 2,
        }

    def test_delete_application(self, orchestrator, project, freelance):
        app = orchestrator.create_application(project.id, freelance.id, 1, "")

        assert orchestrator.delete_application(app.id) is True
        assert not Application.objects.filter(pk=app.id).exists()

        with pytest.raises(NotFound):
            orchestrator.delete_application(app.id)
