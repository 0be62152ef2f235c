import uuid

from django.db import models
from django.utils import timezone

from apps.users.models import Company, Freelance, Project


class ProjectInvitation(models.Model):
    SENT = "sent"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"

    STATUS_CHOICES = (
        (SENT, "Sent"),
        (VIEWED, "Viewed"),
        (ACCEPTED, "Accepted"),
        (DECLINED, "Declined"),
        (EXPIRED, "Expired"),
    )
    # The freelance can still answer these
    OPEN_STATUSES = (SENT, VIEWED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="invitations")
    freelance = models.ForeignKey(Freelance, on_delete=models.CASCADE, related_name="invitations")
    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="sent_invitations")

    message = models.TextField(blank=True, default="")

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=SENT)

    sent_at = models.DateTimeField(default=timezone.now)
    responded_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "project_invitations"
        ordering = ["-sent_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["project", "freelance", "company"],
                name="unique_project_invitation",
            ),
        ]
        indexes = [
            models.Index(fields=["freelance", "status"]),
            models.Index(fields=["status", "expires_at"]),
        ]

    def __str__(self):
        return f"Invitation {self.project.title} → {self.freelance} ({self.status})"

    @property
    def is_expired(self):
        return self.expires_at is not None and self.expires_at <= timezone.now()
