import logging
from datetime import date
from decimal import Decimal, InvalidOperation

from django.db import IntegrityError, transaction
from django.utils.dateparse import parse_date

from apps.applications.models import Application
from apps.contract.constants import (
    AMOUNT_BASED_MODES,
    EDITABLE_FIELDS,
    EDITABLE_STATUSES,
    TRANSITION_EVENTS,
)
from apps.contract.models import Contract
from apps.cores.exceptions import Conflict, Unauthorized, ValidationFailed
from apps.cores.utils import get_or_not_found
from apps.notifications.services.dispatcher import (
    SideEffectDispatcher,
    engagement_context,
    notify_safely,
)
from apps.users.models import Company, Freelance, Project

logger = logging.getLogger(__name__)

VALID_STATUSES = {value for value, _ in Contract.STATUS_CHOICES}
VALID_PAYMENT_MODES = {value for value, _ in Contract.PAYMENT_MODE_CHOICES}


def _decimal(value, label):
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationFailed(f"{label} must be a number.")
    if amount < 0:
        raise ValidationFailed(f"{label} cannot be negative.")
    return amount


def _days(value):
    if value is None:
        return None
    try:
        days = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed("Estimated days must be an integer.")
    if days < 0:
        raise ValidationFailed("Estimated days cannot be negative.")
    return days


def _date(value, label):
    if value is None or isinstance(value, date):
        return value
    parsed = parse_date(str(value))
    if parsed is None:
        raise ValidationFailed(f"{label} is not a valid date.")
    return parsed


def validate_terms(payment_mode, total_amount=None, tjm=None, estimated_days=None,
                   start_date=None, end_date=None):
    """
    Check the money and date fields of a contract against its payment mode.
    Returns the normalised values.
    """
    if payment_mode not in VALID_PAYMENT_MODES:
        raise ValidationFailed(f"Unknown payment mode: {payment_mode!r}.")

    total_amount = _decimal(total_amount, "Total amount")
    tjm = _decimal(tjm, "Daily rate")
    estimated_days = _days(estimated_days)
    start_date = _date(start_date, "Start date")
    end_date = _date(end_date, "End date")

    if payment_mode in AMOUNT_BASED_MODES and not total_amount:
        raise ValidationFailed(
            "A positive total amount is required for fixed price and milestone contracts."
        )

    if payment_mode == Contract.DAILY_RATE:
        if not tjm:
            raise ValidationFailed("A positive daily rate is required for daily rate contracts.")
        if not estimated_days:
            raise ValidationFailed("A positive number of estimated days is required for daily rate contracts.")

    if start_date and end_date and start_date > end_date:
        raise ValidationFailed("The start date must be before the end date.")

    return {
        "payment_mode": payment_mode,
        "total_amount": total_amount,
        "tjm": tjm,
        "estimated_days": estimated_days,
        "start_date": start_date,
        "end_date": end_date,
    }


class ContractLifecycleManager:
    """
    Creates contracts and moves them through
        DRAFT -> PENDING -> ACTIVE -> COMPLETED
    with CANCELLED / SUSPENDED on the side. Notifications follow
    TRANSITION_EVENTS.
    """

    def __init__(self, dispatcher=None):
        self.dispatcher = dispatcher or SideEffectDispatcher()

    def get_contract(self, contract_id):
        return get_or_not_found(
            Contract.objects.select_related("project", "freelance__user", "company__user"),
            "Contract not found.",
            pk=contract_id,
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    def create_contract(self, project_id, freelance_id, company_id, payment_mode,
                        application_id=None, total_amount=None, tjm=None,
                        estimated_days=None, terms="", start_date=None,
                        end_date=None, status=None):
        if application_id is not None:
            get_or_not_found(Application, "Application not found.", pk=application_id)
            if Contract.objects.filter(application_id=application_id).exists():
                raise Conflict("A contract already exists for this application.")

        project = get_or_not_found(Project, "Project not found.", pk=project_id)
        freelance = get_or_not_found(Freelance.objects.select_related("user"), "Freelance not found.", pk=freelance_id)
        company = get_or_not_found(Company.objects.select_related("user"), "Company not found.", pk=company_id)

        status = status or Contract.DRAFT
        if status not in VALID_STATUSES:
            raise ValidationFailed(f"Unknown contract status: {status!r}.")

        values = validate_terms(
            payment_mode, total_amount, tjm, estimated_days, start_date, end_date
        )

        try:
            with transaction.atomic():
                contract = Contract.objects.create(
                    application_id=application_id,
                    project=project,
                    freelance=freelance,
                    company=company,
                    terms=terms or "",
                    status=status,
                    **values,
                )
        except IntegrityError:
            raise Conflict("A contract already exists for this application.")

        logger.info(
            "Contract %s created (%s, %s) for project %s",
            contract.id, payment_mode, status, project.id,
        )

        notify_safely(
            self.dispatcher,
            "contract.proposed",
            [freelance],
            engagement_context(project, freelance, company),
            {"contract_id": str(contract.id), "project_id": str(project.id)},
        )
        return contract

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def update_contract_status(self, contract_id, new_status):
        if new_status not in VALID_STATUSES:
            raise ValidationFailed(f"Unknown contract status: {new_status!r}.")

        contract = self.get_contract(contract_id)
        if contract.status == new_status:
            return contract

        return self._transition(contract, new_status)

    def update_contract(self, contract_id, company_id, **fields):
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationFailed(f"Fields cannot be edited: {', '.join(sorted(unknown))}.")

        contract = self.get_contract(contract_id)
        if str(contract.company_id) != str(company_id):
            raise Unauthorized("Only the company that proposed the contract can edit it.")
        if contract.status not in EDITABLE_STATUSES:
            raise Conflict("Only draft or pending contracts can be edited.")

        terms = fields.pop("terms", None)
        merged = {
            name: fields.get(name, getattr(contract, name))
            for name in ("payment_mode", "total_amount", "tjm", "estimated_days", "start_date", "end_date")
        }
        values = validate_terms(**merged)
        if terms is not None:
            values["terms"] = terms

        return self._transition(contract, Contract.PENDING, **values)

    def accept_contract(self, contract_id, freelance_id):
        contract = self._for_freelance(contract_id, freelance_id)
        if contract.status != Contract.PENDING:
            raise Conflict("Only pending contracts can be accepted.")
        return self._transition(contract, Contract.ACTIVE)

    def refuse_contract(self, contract_id, freelance_id):
        contract = self._for_freelance(contract_id, freelance_id)
        if contract.status != Contract.PENDING:
            raise Conflict("Only pending contracts can be refused.")
        return self._transition(contract, Contract.CANCELLED)

    def complete_contract(self, contract_id, company_id):
        contract = self.get_contract(contract_id)
        if str(contract.company_id) != str(company_id):
            raise Unauthorized("Only the company can mark the contract as completed.")
        if contract.status != Contract.ACTIVE:
            raise Conflict("Only active contracts can be completed.")
        return self._transition(contract, Contract.COMPLETED)

    def delete_contract(self, contract_id):
        contract = get_or_not_found(Contract, "Contract not found.", pk=contract_id)
        contract.delete()
        logger.info("Contract %s deleted", contract_id)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _transition(self, contract, new_status, **fields):
        old_status = contract.status

        with transaction.atomic():
            updated = Contract.objects.filter(
                pk=contract.pk, status=old_status
            ).update(status=new_status, **fields)
        if not updated:
            raise Conflict("The contract was modified concurrently; please retry.")

        contract.status = new_status
        for name, value in fields.items():
            setattr(contract, name, value)

        logger.info("Contract %s moved %s -> %s", contract.id, old_status, new_status)
        self._notify_transition(contract, old_status, new_status)
        return contract

    def _notify_transition(self, contract, old_status, new_status):
        rule = TRANSITION_EVENTS.get((old_status, new_status))
        if rule is None:
            return

        event, audience = rule
        recipients = {
            "company": [contract.company],
            "freelance": [contract.freelance],
            "both": [contract.company, contract.freelance],
        }[audience]

        notify_safely(
            self.dispatcher,
            event,
            recipients,
            engagement_context(contract.project, contract.freelance, contract.company),
            {"contract_id": str(contract.id), "project_id": str(contract.project_id)},
        )

    def _for_freelance(self, contract_id, freelance_id):
        contract = self.get_contract(contract_id)
        if str(contract.freelance_id) != str(freelance_id):
            raise Unauthorized("Only the contracted freelance can answer this contract.")
        return contract
