from django.db.models import Count

from .models import Application


def application_status_counts(project_id=None, freelance_id=None):
    """
    Number of applications per status, every status present (zero-filled),
    plus `total`. Optionally scoped to a project and/or a freelance.
    """
    qs = Application.objects.all()
    if project_id is not None:
        qs = qs.filter(project_id=project_id)
    if freelance_id is not None:
        qs = qs.filter(freelance_id=freelance_id)

    rows = qs.order_by().values("status").annotate(count=Count("id"))

    counts = {status: 0 for status, _ in Application.STATUS_CHOICES}
    for row in rows:
        counts[row["status"]] = row["count"]
    counts["total"] = sum(counts.values())
    return counts
