"""
Engagement Test Configuration

Shared fixtures for all tests. Settings come from
MarketplaceProject.test_settings (eager Celery, locmem email,
in-memory channel layer, keyword moderation).
"""
import itertools
from decimal import Decimal

import pytest

from apps.contract.models import Contract
from apps.cores.moderation import KeywordModerator
from apps.engagement.orchestrator import get_orchestrator
from apps.notifications.models import UserNotification
from apps.users.models import Company, Freelance, Project, User

_counter = itertools.count(1)


# =============================================================================
# FIXTURES: Factories
# =============================================================================

@pytest.fixture
def make_user(db):
    def _make(role="freelance", email=None):
        n = next(_counter)
        return User.objects.create_user(
            email=email or f"{role}{n}@example.com",
            username=f"{role}{n}",
            password="secret",
            role=role,
        )
    return _make


@pytest.fixture
def make_company(make_user):
    def _make(name="Acme", company_email=None):
        user = make_user("company")
        return Company.objects.create(
            user=user,
            company_name=name,
            company_email=company_email or "",
        )
    return _make


@pytest.fixture
def make_freelance(make_user):
    def _make(firstname="Ada", lastname="Lovelace"):
        user = make_user("freelance")
        return Freelance.objects.create(user=user, firstname=firstname, lastname=lastname)
    return _make


@pytest.fixture
def make_project(company):
    def _make(title="Data pipeline", allow_multiple_hires=False, owner=None):
        return Project.objects.create(
            company=owner or company,
            title=title,
            description="Build it",
            allow_multiple_hires=allow_multiple_hires,
        )
    return _make


# =============================================================================
# FIXTURES: Sample Data
# =============================================================================

@pytest.fixture
def company(make_company):
    return make_company(name="Acme", company_email="jobs@acme.example")


@pytest.fixture
def freelance(make_freelance):
    return make_freelance()


@pytest.fixture
def project(make_project):
    return make_project()


@pytest.fixture
def orchestrator(db):
    return get_orchestrator(moderator=KeywordModerator(["scam", "idiot"]))


@pytest.fixture
def make_contract(orchestrator, company, freelance, project):
    def _make(status=Contract.DRAFT, **overrides):
        fields = {
            "payment_mode": Contract.FIXED_PRICE,
            "total_amount": Decimal("1500.00"),
            "status": status,
        }
        fields.update(overrides)
        return orchestrator.create_contract(project.id, freelance.id, company.id, **fields)
    return _make


@pytest.fixture
def completed_contract(make_contract):
    return make_contract(status=Contract.COMPLETED)


# =============================================================================
# HELPERS
# =============================================================================

def notifications_of(profile, notif_type):
    """Number of notifications of this type delivered to a Company/Freelance."""
    return UserNotification.objects.filter(
        user_id=profile.user_id,
        notification__notif_type=notif_type,
    ).count()
