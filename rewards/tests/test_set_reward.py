import pytest
from django.core.exceptions import ValidationError

from core.exceptions import NotConverted, NotFound
from dashboard.models import ActivityLog, Referral
from dashboard.services.attribution import (
    BookingEvent,
    RefereeContact,
    list_conversions,
    process_booking_event,
    record_conversion,
    register_referral,
)
from rewards.models import RewardRecord
from rewards.services.core import set_reward

pytestmark = pytest.mark.django_db


def _converted_referral(referrer):
    referral_id = register_referral("ABC123", RefereeContact(name="Xavier", email="x@y.com"))
    record_conversion(referral_id)
    return referral_id


def test_abc123_flow_end_to_end(referrer):
    referral_id = register_referral("ABC123", RefereeContact(name="Xavier", email="x@y.com"))
    process_booking_event(referrer.company, BookingEvent(referee_email="x@y.com"))
    assert Referral.objects.get(pk=referral_id).converted is True
    assert ActivityLog.objects.filter(type="referral_converted").count() == 1

    first = set_reward(referral_id, True, amount="$25")
    second = set_reward(referral_id, True, amount="$25")

    assert first.created is True and first.changed is True
    assert second.created is False and second.changed is False
    assert RewardRecord.objects.filter(referral_id=referral_id).count() == 1
    record = RewardRecord.objects.get(referral_id=referral_id)
    assert record.reward_given is True
    assert record.reward_amount == "$25"
    assert record.marked_at == second.record.marked_at
    assert record.marked_at >= first.record.marked_at
    assert ActivityLog.objects.filter(type="referral_reward_given").count() == 1


def test_set_reward_requires_conversion(referrer):
    referral_id = register_referral("ABC123", RefereeContact(name="Xavier", email="x@y.com"))
    with pytest.raises(NotConverted):
        set_reward(referral_id, True)
    assert RewardRecord.objects.count() == 0


def test_set_reward_unknown_referral(company):
    with pytest.raises(NotFound):
        set_reward(4242, True)


def test_set_reward_scoped_to_company(referrer, other_company):
    referral_id = _converted_referral(referrer)
    with pytest.raises(NotFound):
        set_reward(referral_id, True, company=other_company)


def test_set_reward_toggle_logs_each_change(referrer):
    referral_id = _converted_referral(referrer)
    set_reward(referral_id, True)
    set_reward(referral_id, False, notes="Client parti")
    set_reward(referral_id, False)

    record = RewardRecord.objects.get(referral_id=referral_id)
    assert record.reward_given is False
    assert record.notes == "Client parti"
    assert ActivityLog.objects.filter(type="referral_reward_given").count() == 1
    assert ActivityLog.objects.filter(type="referral_reward_withheld").count() == 1


def test_set_reward_keeps_amount_when_omitted(referrer):
    referral_id = _converted_referral(referrer)
    set_reward(referral_id, True, amount="$50")
    set_reward(referral_id, True)
    assert RewardRecord.objects.get(referral_id=referral_id).reward_amount == "$50"


@pytest.mark.parametrize("amount", ["beaucoup", "$25$25$25", "1" * 40, "-5"])
def test_set_reward_rejects_malformed_amount(referrer, amount):
    referral_id = _converted_referral(referrer)
    with pytest.raises(ValidationError):
        set_reward(referral_id, True, amount=amount)
    assert RewardRecord.objects.count() == 0


def test_set_reward_accepts_common_amount_formats(referrer):
    referral_id = _converted_referral(referrer)
    for amount in ("$25", "25", "25.50", "25,50 €"):
        set_reward(referral_id, True, amount=f"  {amount} ")
        assert RewardRecord.objects.get(referral_id=referral_id).reward_amount == amount


def test_conversions_list_includes_reward(referrer):
    referral_id = _converted_referral(referrer)
    set_reward(referral_id, True, amount="$25")
    (row,) = list_conversions(referrer.company)
    assert row.reward.reward_given is True
