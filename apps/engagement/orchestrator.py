"""
Single entry point for the engagement lifecycle of a project:
application -> contract -> evaluation, plus invitations feeding applications.

Callers (views, tasks, shell) go through EngagementOrchestrator so that every
cross-entity rule and side effect is applied the same way.
"""
from apps.applications.serializers import ApplicationDetailSerializer
from apps.applications.services.conversations import ConversationService
from apps.applications.services.lifecycle import ApplicationLifecycleManager
from apps.contract.services import ContractLifecycleManager
from apps.cores.moderation import get_moderator
from apps.evaluation.services import EvaluationManager
from apps.invitations.services import InvitationBridge
from apps.notifications.services.dispatcher import SideEffectDispatcher


class EngagementOrchestrator:

    def __init__(self, dispatcher=None, conversations=None, moderator=None,
                 applications=None, contracts=None, evaluations=None, invitations=None):
        self.dispatcher = dispatcher or SideEffectDispatcher()
        self.applications = applications or ApplicationLifecycleManager(
            dispatcher=self.dispatcher,
            conversations=conversations or ConversationService(),
        )
        self.contracts = contracts or ContractLifecycleManager(dispatcher=self.dispatcher)
        self.evaluations = evaluations or EvaluationManager(moderator=moderator or get_moderator())
        self.invitations = invitations or InvitationBridge(
            applications=self.applications,
            dispatcher=self.dispatcher,
        )

    # -------------------------------
    # Applications
    # -------------------------------
    def create_application(self, project_id, freelance_id, proposed_rate=None, cover_letter=""):
        return self.applications.create_application(project_id, freelance_id, proposed_rate, cover_letter)

    def withdraw_application(self, application_id, freelance_id):
        return self.applications.withdraw_application(application_id, freelance_id)

    def update_application_status(self, application_id, new_status, response_date=None):
        return self.applications.update_application_status(application_id, new_status, response_date)

    def review_application(self, application_id):
        return self.applications.review_application(application_id)

    def accept_application(self, application_id, response_date=None):
        return self.applications.accept_application(application_id, response_date)

    def reject_application(self, application_id, response_date=None):
        return self.applications.reject_application(application_id, response_date)

    def update_application_content(self, application_id, freelance_id, proposed_rate=None, cover_letter=None):
        return self.applications.update_application_content(
            application_id, freelance_id, proposed_rate, cover_letter
        )

    def delete_application(self, application_id):
        return self.applications.delete_application(application_id)

    def describe_application(self, application_id):
        """Application enriched with project and freelance summaries."""
        application = self.applications.get_application(application_id)
        return ApplicationDetailSerializer(application).data

    # -------------------------------
    # Contracts
    # -------------------------------
    def create_contract(self, project_id, freelance_id, company_id, payment_mode, **kwargs):
        return self.contracts.create_contract(project_id, freelance_id, company_id, payment_mode, **kwargs)

    def transition_contract(self, contract_id, new_status):
        return self.contracts.update_contract_status(contract_id, new_status)

    def update_contract(self, contract_id, company_id, **fields):
        return self.contracts.update_contract(contract_id, company_id, **fields)

    def accept_contract(self, contract_id, freelance_id):
        return self.contracts.accept_contract(contract_id, freelance_id)

    def refuse_contract(self, contract_id, freelance_id):
        return self.contracts.refuse_contract(contract_id, freelance_id)

    def complete_contract(self, contract_id, company_id):
        return self.contracts.complete_contract(contract_id, company_id)

    def delete_contract(self, contract_id):
        return self.contracts.delete_contract(contract_id)

    # -------------------------------
    # Evaluations
    # -------------------------------
    def create_evaluation(self, contract_id, evaluator_id, evaluated_id,
                          evaluator_type, evaluated_type, rating, comment=None):
        return self.evaluations.create_evaluation(
            contract_id, evaluator_id, evaluated_id,
            evaluator_type, evaluated_type, rating, comment,
        )

    def update_evaluation(self, evaluation_id, actor_id, actor_type, rating=None, comment=None):
        return self.evaluations.update_evaluation(evaluation_id, actor_id, actor_type, rating, comment)

    def delete_evaluation(self, evaluation_id, actor_id, actor_type):
        return self.evaluations.delete_evaluation(evaluation_id, actor_id, actor_type)

    def can_user_evaluate(self, contract_id, evaluator_id, evaluator_type):
        return self.evaluations.can_user_evaluate(contract_id, evaluator_id, evaluator_type)

    # -------------------------------
    # Invitations
    # -------------------------------
    def create_invitation(self, project_id, freelance_id, company_id, message="", expires_at=None):
        return self.invitations.create_invitation(project_id, freelance_id, company_id, message, expires_at)

    def mark_invitation_viewed(self, invitation_id, freelance_id):
        return self.invitations.mark_invitation_viewed(invitation_id, freelance_id)

    def accept_invitation(self, invitation_id, freelance_id):
        return self.invitations.accept_invitation(invitation_id, freelance_id)

    def decline_invitation(self, invitation_id, freelance_id):
        return self.invitations.decline_invitation(invitation_id, freelance_id)


def get_orchestrator(**collaborators):
    """Orchestrator wired with the default collaborators; any can be overridden."""
    return EngagementOrchestrator(**collaborators)
