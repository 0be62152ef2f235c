from decimal import Decimal, ROUND_HALF_UP

from django.db.models import Avg, Count, Q

from .models import Evaluation


def user_evaluation_stats(user_id, user_type):
    """
    Ratings received by a freelance or a company:
    total, average (2 decimals) and a 1..5 distribution.
    """
    qs = Evaluation.objects.filter(evaluated_id=user_id, evaluated_type=user_type)

    totals = qs.aggregate(
        total=Count("id"),
        average=Avg("rating"),
        **{f"rating_{n}": Count("id", filter=Q(rating=n)) for n in range(1, 6)},
    )

    average = totals["average"] or 0
    return {
        "user_id": str(user_id),
        "user_type": user_type,
        "total_evaluations": totals["total"],
        "average_rating": Decimal(str(average)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        "rating_distribution": {
            f"rating_{n}": totals[f"rating_{n}"] for n in range(1, 6)
        },
    }


def evaluations_for_contract(contract_id):
    return Evaluation.objects.filter(contract_id=contract_id).order_by("created_at")
