import uuid

from django.db import models
from django.conf import settings



class Notification(models.Model):
    """
    One notification event; fanned out to recipients through UserNotification.
    """

    NOTIFICATION_TYPES = [
        ("APPLICATION_SUBMITTED", "Application Submitted"),
        ("APPLICATION_WITHDRAWN", "Application Withdrawn"),
        ("APPLICATION_ACCEPTED", "Application Accepted"),
        ("APPLICATION_REJECTED", "Application Rejected"),
        ("APPLICATION_AUTO_REJECTED", "Application Auto Rejected"),
        ("CONTRACT_PROPOSED", "Contract Proposed"),
        ("CONTRACT_ACCEPTED", "Contract Accepted"),
        ("CONTRACT_REJECTED", "Contract Rejected"),
        ("CONTRACT_COMPLETED", "Contract Completed"),
        ("CONTRACT_UPDATED", "Contract Updated"),
        ("INVITATION_ACCEPTED", "Invitation Accepted"),
        ("INVITATION_DECLINED", "Invitation Declined"),
        ("SYSTEM", "System Notification"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    notif_type = models.CharField(
        max_length=50,
        choices=NOTIFICATION_TYPES
    )

    title = models.CharField(max_length=255)

    message = models.TextField(blank=True)

    # Optional metadata (store IDs like project_id, contract_id)
    data = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Notification({self.notif_type}, {self.title})"


class UserNotification(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications"
    )
    notification = models.ForeignKey(
        Notification,
        on_delete=models.CASCADE,
        related_name="deliveries"
    )

    # Status flags
    is_read = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "notification"],
                name="unique_user_notification",
            ),
        ]
        indexes = [
            models.Index(fields=["user", "is_read"]),
        ]

    def __str__(self):
        return f"UserNotification({self.user_id}, {self.notification.notif_type})"
