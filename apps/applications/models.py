import uuid

from django.db import models
from django.db.models import Q
from django.utils import timezone

from apps.users.models import Company, Freelance, Project


class Application(models.Model):
    SUBMITTED = 'submitted'
    UNDER_REVIEW = 'under_review'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    WITHDRAWN = 'withdrawn'

    STATUS_CHOICES = [
        (SUBMITTED, 'Submitted'),
        (UNDER_REVIEW, 'Under Review'),
        (ACCEPTED, 'Accepted'),
        (REJECTED, 'Rejected'),
        (WITHDRAWN, 'Withdrawn'),
    ]

    # At most one of these per (freelance, project)
    ACTIVE_STATUSES = (SUBMITTED, UNDER_REVIEW, ACCEPTED)
    # A new submission reactivates these in place
    DEAD_STATUSES = (REJECTED, WITHDRAWN)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name="applications"
    )

    freelance = models.ForeignKey(
        Freelance,
        on_delete=models.CASCADE,
        related_name="applications"
    )

    proposed_rate = models.DecimalField(
        max_digits=12, decimal_places=2,
        null=True, blank=True
    )

    cover_letter = models.TextField(blank=True, default="")

    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=SUBMITTED
    )

    submission_date = models.DateTimeField(default=timezone.now)
    response_date = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "applications"
        ordering = ['-submission_date']
        constraints = [
            models.UniqueConstraint(
                fields=["freelance", "project"],
                condition=Q(status__in=["submitted", "under_review", "accepted"]),
                name="unique_active_application",
            ),
            models.CheckConstraint(
                condition=Q(proposed_rate__isnull=True) | Q(proposed_rate__gte=0),
                name="application_rate_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["project", "status"]),
            models.Index(fields=["freelance", "project", "-submission_date"]),
        ]

    def __str__(self):
        return f"{self.freelance} → {self.project.title} ({self.status})"

    @property
    def is_active(self):
        return self.status in self.ACTIVE_STATUSES


class Conversation(models.Model):
    """
    Chat channel between a company and a freelance, opened once an
    application is accepted.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    freelance = models.ForeignKey(
        Freelance,
        on_delete=models.CASCADE,
        related_name="conversations"
    )
    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="conversations"
    )
    application = models.OneToOneField(
        Application,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="conversation"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "conversations"
        ordering = ["-updated_at"]

    def __str__(self):
        return f"Conversation({self.company} ↔ {self.freelance})"
