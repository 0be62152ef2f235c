import logging
from datetime import timedelta

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.contract.models import Contract
from apps.cores.exceptions import (
    Conflict,
    DependencyFailure,
    NotFound,
    Unauthorized,
    ValidationFailed,
)
from apps.cores.moderation import DEFAULT_REJECTION_REASON, get_moderator
from apps.cores.utils import get_or_not_found
from apps.users.models import Company, Freelance
from .models import Evaluation

logger = logging.getLogger(__name__)

PARTY_TYPES = {Evaluation.FREELANCE, Evaluation.COMPANY}
PARTY_MODELS = {Evaluation.FREELANCE: Freelance, Evaluation.COMPANY: Company}


def _party_type(value, label):
    normalized = str(value or "").lower()
    if normalized not in PARTY_TYPES:
        raise ValidationFailed(f"Unknown {label} type: {value!r}.")
    return normalized


def _rating(value):
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
        raise ValidationFailed("Rating must be an integer between 1 and 5.")
    return value


def _is_party(contract, party_id, party_type):
    if party_type == Evaluation.FREELANCE:
        return str(contract.freelance_id) == str(party_id)
    return str(contract.company_id) == str(party_id)


class EvaluationManager:
    """
    Post-contract ratings between the two parties of a COMPLETED contract.
    Comments are screened by the content moderator before they are stored.
    """

    def __init__(self, moderator=None):
        self.moderator = moderator or get_moderator()

    @property
    def edit_window(self):
        return timedelta(hours=settings.EVALUATION_EDIT_WINDOW_HOURS)

    @property
    def delete_window(self):
        return timedelta(hours=settings.EVALUATION_DELETE_WINDOW_HOURS)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    def create_evaluation(self, contract_id, evaluator_id, evaluated_id,
                          evaluator_type, evaluated_type, rating, comment=None):
        contract = get_or_not_found(
            Contract.objects.select_related("project", "freelance", "company"),
            "Contract not found.",
            pk=contract_id,
        )
        if contract.status != Contract.COMPLETED:
            raise Conflict("Evaluations are only allowed once the contract is completed.")

        evaluator_type = _party_type(evaluator_type, "evaluator")
        evaluated_type = _party_type(evaluated_type, "evaluated")

        if str(evaluator_id) == str(evaluated_id):
            raise ValidationFailed("You cannot evaluate yourself.")
        if not _is_party(contract, evaluator_id, evaluator_type):
            raise ValidationFailed("The evaluator must be a party to the contract.")
        if not _is_party(contract, evaluated_id, evaluated_type):
            raise ValidationFailed("The evaluated user must be a party to the contract.")
        if evaluator_type == evaluated_type:
            raise ValidationFailed("A party can only evaluate the other side of the contract.")

        rating = _rating(rating)

        if Evaluation.objects.filter(contract=contract, evaluator_id=evaluator_id).exists():
            raise Conflict("You have already evaluated this contract.")

        for party_id, party_type in ((evaluator_id, evaluator_type), (evaluated_id, evaluated_type)):
            if not PARTY_MODELS[party_type].objects.filter(pk=party_id).exists():
                raise NotFound(f"{party_type.capitalize()} not found.")

        self._moderate(comment)

        try:
            with transaction.atomic():
                evaluation = Evaluation.objects.create(
                    contract=contract,
                    evaluator_id=evaluator_id,
                    evaluated_id=evaluated_id,
                    evaluator_type=evaluator_type,
                    evaluated_type=evaluated_type,
                    rating=rating,
                    comment=comment or None,
                )
        except IntegrityError:
            raise Conflict("You have already evaluated this contract.")

        logger.info(
            "Evaluation %s: %s %s rated %s %s %d/5 on contract %s",
            evaluation.id, evaluator_type, evaluator_id,
            evaluated_type, evaluated_id, rating, contract.id,
        )
        return evaluation

    # ------------------------------------------------------------------
    # Update / delete (author only, time-boxed)
    # ------------------------------------------------------------------
    def update_evaluation(self, evaluation_id, actor_id, actor_type, rating=None, comment=None):
        evaluation = self._authored(evaluation_id, actor_id, actor_type, "edit")
        self._check_window(evaluation, self.edit_window, "edited")

        fields = []
        if rating is not None:
            evaluation.rating = _rating(rating)
            fields.append("rating")
        if comment is not None:
            self._moderate(comment)
            evaluation.comment = comment or None
            fields.append("comment")

        if fields:
            evaluation.save(update_fields=fields + ["updated_at"])
            logger.info("Evaluation %s updated (%s)", evaluation.id, ", ".join(fields))
        return evaluation

    def delete_evaluation(self, evaluation_id, actor_id, actor_type):
        evaluation = self._authored(evaluation_id, actor_id, actor_type, "delete")
        self._check_window(evaluation, self.delete_window, "deleted")

        evaluation.delete()
        logger.info("Evaluation %s deleted by its author", evaluation_id)
        return True

    # ------------------------------------------------------------------
    # Probe
    # ------------------------------------------------------------------
    def can_user_evaluate(self, contract_id, evaluator_id, evaluator_type):
        def refuse(reason):
            return {"can_evaluate": False, "reason": reason, "target_user": None}

        try:
            contract = get_or_not_found(
                Contract.objects.select_related("project", "freelance__user", "company__user"),
                "Contract not found.",
                pk=contract_id,
            )
        except NotFound as e:
            return refuse(str(e))

        if contract.status != Contract.COMPLETED:
            return refuse("The contract must be completed before it can be evaluated.")

        evaluator_type = str(evaluator_type or "").lower()
        if evaluator_type not in PARTY_TYPES or not _is_party(contract, evaluator_id, evaluator_type):
            return refuse("You must be a party to the contract to evaluate it.")

        if Evaluation.objects.filter(contract=contract, evaluator_id=evaluator_id).exists():
            return refuse("You have already evaluated this contract.")

        if evaluator_type == Evaluation.FREELANCE:
            target = {
                "id": str(contract.company_id),
                "type": Evaluation.COMPANY,
                "name": contract.company.display_name,
            }
        else:
            target = {
                "id": str(contract.freelance_id),
                "type": Evaluation.FREELANCE,
                "name": contract.freelance.full_name,
            }

        return {"can_evaluate": True, "reason": None, "target_user": target}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _authored(self, evaluation_id, actor_id, actor_type, verb):
        evaluation = get_or_not_found(Evaluation, "Evaluation not found.", pk=evaluation_id)
        same_author = (
            str(evaluation.evaluator_id) == str(actor_id)
            and evaluation.evaluator_type == str(actor_type or "").lower()
        )
        if not same_author:
            raise Unauthorized(f"Only the author of the evaluation can {verb} it.")
        return evaluation

    @staticmethod
    def _check_window(evaluation, window, verb):
        if timezone.now() - evaluation.created_at > window:
            hours = int(window.total_seconds() // 3600)
            raise Conflict(f"The evaluation can no longer be {verb} after {hours} hours.")

    def _moderate(self, comment):
        if not comment or not comment.strip():
            return
        try:
            result = self.moderator.check(comment)
        except DependencyFailure:
            logger.warning("Moderation unavailable, accepting comment unchecked", exc_info=True)
            return
        if not result.is_appropriate:
            raise ValidationFailed(result.reason or DEFAULT_REJECTION_REASON)
