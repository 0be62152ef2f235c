import uuid

from django.db import models
from django.db.models import Q

from apps.users.models import Company, Freelance, Project


class Contract(models.Model):
    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SUSPENDED = "suspended"

    STATUS_CHOICES = (
        (DRAFT, "Draft"),
        (PENDING, "Pending"),
        (ACTIVE, "Active"),
        (COMPLETED, "Completed"),
        (CANCELLED, "Cancelled"),
        (SUSPENDED, "Suspended"),
    )

    FIXED_PRICE = "fixed_price"
    DAILY_RATE = "daily_rate"
    BY_MILESTONE = "by_milestone"

    PAYMENT_MODE_CHOICES = (
        (FIXED_PRICE, "Fixed price"),
        (DAILY_RATE, "Daily rate"),
        (BY_MILESTONE, "By milestone"),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # One contract per application
    application = models.OneToOneField(
        "applications.Application",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="contract"
    )

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="contracts")
    freelance = models.ForeignKey(Freelance, on_delete=models.CASCADE, related_name="contracts")
    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="contracts")

    payment_mode = models.CharField(max_length=20, choices=PAYMENT_MODE_CHOICES)

    total_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    tjm = models.DecimalField(
        max_digits=10, decimal_places=2,
        null=True, blank=True,
        help_text="Daily rate, used with the daily_rate payment mode"
    )
    estimated_days = models.PositiveIntegerField(null=True, blank=True)

    terms = models.TextField(blank=True, default="")

    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)

    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=DRAFT
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "contracts"
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(total_amount__isnull=True) | Q(total_amount__gte=0),
                name="contract_total_amount_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(tjm__isnull=True) | Q(tjm__gte=0),
                name="contract_tjm_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["freelance", "status"]),
            models.Index(fields=["company", "status"]),
        ]

    def __str__(self):
        return f"Contract {self.id} · {self.project.title} ({self.status})"
