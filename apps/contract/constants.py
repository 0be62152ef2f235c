from apps.contract.models import Contract

# -----------------------------
# TRANSITION NOTIFICATIONS
# (old status, new status) -> (event, audience)
# audience is "company", "freelance" or "both". Pairs not listed notify nobody.
# -----------------------------

TRANSITION_EVENTS = {
    (Contract.PENDING, Contract.ACTIVE): ("contract.accepted", "company"),
    (Contract.PENDING, Contract.CANCELLED): ("contract.rejected", "company"),
    (Contract.ACTIVE, Contract.COMPLETED): ("contract.completed", "both"),
    (Contract.DRAFT, Contract.PENDING): ("contract.updated", "freelance"),
}


# -----------------------------
# PAYMENT MODES
# -----------------------------

# Modes billed on a single agreed amount
AMOUNT_BASED_MODES = {Contract.FIXED_PRICE, Contract.BY_MILESTONE}

# Fields a company may change through update_contract
EDITABLE_FIELDS = {
    "payment_mode",
    "total_amount",
    "tjm",
    "estimated_days",
    "terms",
    "start_date",
    "end_date",
}

# update_contract is only allowed from these statuses
EDITABLE_STATUSES = (Contract.DRAFT, Contract.PENDING)
