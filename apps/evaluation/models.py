import uuid

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from apps.contract.models import Contract


class Evaluation(models.Model):
    FREELANCE = "freelance"
    COMPANY = "company"

    PARTY_CHOICES = (
        (FREELANCE, "Freelance"),
        (COMPANY, "Company"),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    contract = models.ForeignKey(
        Contract,
        on_delete=models.CASCADE,
        related_name="evaluations"
    )

    # Profile ids (Freelance.id or Company.id), typed by the *_type fields
    evaluator_id = models.UUIDField()
    evaluated_id = models.UUIDField()
    evaluator_type = models.CharField(max_length=20, choices=PARTY_CHOICES)
    evaluated_type = models.CharField(max_length=20, choices=PARTY_CHOICES)

    rating = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    comment = models.TextField(blank=True, null=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "evaluations"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["contract", "evaluator_id"],
                name="unique_evaluation_per_contract_evaluator",
            ),
            models.CheckConstraint(
                condition=Q(rating__gte=1) & Q(rating__lte=5),
                name="evaluation_rating_range",
            ),
        ]
        indexes = [
            models.Index(fields=["evaluated_id", "evaluated_type"]),
        ]

    def __str__(self):
        return f"{self.evaluator_type} → {self.evaluated_type}: {self.rating}/5"
