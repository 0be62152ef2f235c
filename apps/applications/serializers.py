from rest_framework import serializers

from apps.users.models import Company, Freelance, Project
from .models import Application


# ---------------- Company Summary ----------------
class CompanySummarySerializer(serializers.ModelSerializer):
    name = serializers.CharField(source="display_name", read_only=True)

    class Meta:
        model = Company
        fields = ['id', 'name', 'company_email']


# ---------------- Project Summary ----------------
class ProjectSummarySerializer(serializers.ModelSerializer):
    company = CompanySummarySerializer(read_only=True)

    class Meta:
        model = Project
        fields = [
            'id',
            'title',
            'description',
            'status',
            'allow_multiple_hires',
            'company',
        ]


# ---------------- Freelance Summary ----------------
class FreelanceSummarySerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)
    email = serializers.EmailField(source="user.email", read_only=True)

    class Meta:
        model = Freelance
        fields = ['id', 'firstname', 'lastname', 'full_name', 'email']


# ---------------- Application Detail ----------------
class ApplicationDetailSerializer(serializers.ModelSerializer):
    """Read-side view of an application enriched with both parties."""
    project = ProjectSummarySerializer(read_only=True)
    freelance = FreelanceSummarySerializer(read_only=True)
    conversation_id = serializers.SerializerMethodField()

    class Meta:
        model = Application
        fields = [
            'id',
            'project',
            'freelance',
            'proposed_rate',
            'cover_letter',
            'status',
            'submission_date',
            'response_date',
            'conversation_id',
        ]
        read_only_fields = fields

    def get_conversation_id(self, obj):
        conversation = getattr(obj, "conversation", None)
        return str(conversation.id) if conversation else None
