# conftest.py
import pytest
from django.core.cache import cache

from accounts.models import Company, User
from dashboard.models import Client


@pytest.fixture(autouse=True)
def _isolated_settings(settings):
    settings.SMS_CARRIER = "dry_run"
    settings.TWILIO = {**settings.TWILIO, "VALIDATE_WEBHOOKS": False, "FROM_NUMBER": "+15005550006"}
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def company(db):
    return Company.objects.create(name="Test Co", sms_number="+15005550006")


@pytest.fixture
def other_company(db):
    return Company.objects.create(name="Autre Co", sms_number="+15005550007")


@pytest.fixture
def staff(company):
    return User.objects.create_user(
        "operateur", "op@test.co", "pass-1234", profile=User.Profile.OPERATEUR, company=company,
    )


@pytest.fixture
def staff_client(client, staff):
    client.force_login(staff)
    return client


@pytest.fixture
def referrer(company):
    return Client.objects.create(
        company=company, name="Alice Martin", email="alice@test.co",
        phone="+12025550143", referral_code="ABC123",
    )
