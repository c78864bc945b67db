from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.db.models.query import QuerySet
from django.utils import timezone

from core.exceptions import DuplicateReferral, NotFound, UnknownReferralCode
from dashboard.models import ActivityLog, Client, Referral
from dashboard.services.attribution import (
    BookingEvent,
    RefereeContact,
    list_conversions,
    list_pending,
    process_booking_event,
    record_conversion,
    referral_landing,
    register_referral,
    send_reminder,
)
from sms.models import SmsMessage

pytestmark = pytest.mark.django_db


def _contact(email="x@y.com", name="Xavier Y", phone=""):
    return RefereeContact(name=name, email=email, phone=phone)


def _mk_referral(company, code="ABC123", email="old@y.com", days_ago=0, converted=False):
    ref = Referral.objects.create(
        company=company, referrer_code=code, referee_name="Ancien", referee_email=email,
        converted=converted, converted_at=timezone.now() if converted else None,
    )
    if days_ago:
        Referral.objects.filter(pk=ref.pk).update(created_at=timezone.now() - timedelta(days=days_ago))
        ref.refresh_from_db()
    return ref


# -------------------------------------------------------------
# register_referral
# -------------------------------------------------------------

def test_register_referral_creates_pending(referrer):
    referral_id = register_referral("ABC123", _contact())
    ref = Referral.objects.get(pk=referral_id)
    assert ref.converted is False
    assert ref.converted_at is None
    assert ref.referrer_code == "ABC123"
    assert ref.company_id == referrer.company_id
    assert ActivityLog.objects.filter(type="referral_created", metadata__referral_id=referral_id).count() == 1


def test_register_referral_code_is_trimmed_and_case_insensitive(referrer):
    referral_id = register_referral("  abc123 ", _contact())
    assert Referral.objects.get(pk=referral_id).referrer_code == "ABC123"


def test_register_referral_unknown_code(referrer):
    with pytest.raises(UnknownReferralCode):
        register_referral("NOPE99", _contact())
    assert Referral.objects.count() == 0


def test_register_referral_scoped_to_company(referrer, other_company):
    with pytest.raises(UnknownReferralCode):
        register_referral("ABC123", _contact(), company=other_company)


def test_register_referral_duplicate_pending(referrer):
    register_referral("ABC123", _contact())
    with pytest.raises(DuplicateReferral):
        register_referral("ABC123", _contact(email="X@Y.com"))
    assert Referral.objects.count() == 1


def test_register_referral_allowed_again_once_converted(referrer):
    first = register_referral("ABC123", _contact())
    record_conversion(first)
    second = register_referral("ABC123", _contact())
    assert second != first


def test_register_referral_rejects_malformed_contact(referrer):
    with pytest.raises(ValidationError):
        register_referral("ABC123", _contact(email="pas-un-email"))
    with pytest.raises(ValidationError):
        register_referral("ABC123", _contact(name="  "))


def test_register_referral_normalizes_phone(referrer):
    referral_id = register_referral("ABC123", _contact(phone="(202) 555-0199"))
    assert Referral.objects.get(pk=referral_id).referee_phone == "+12025550199"


# -------------------------------------------------------------
# record_conversion
# -------------------------------------------------------------

def test_record_conversion_is_idempotent(referrer):
    referral_id = register_referral("ABC123", _contact())

    first = record_conversion(referral_id)
    converted_at = first.referral.converted_at
    second = record_conversion(referral_id)
    third = record_conversion(referral_id)

    assert first.converted_now is True
    assert second.converted_now is False and third.converted_now is False
    ref = Referral.objects.get(pk=referral_id)
    assert ref.converted is True
    assert ref.converted_at == converted_at
    assert ActivityLog.objects.filter(type="referral_converted").count() == 1


def test_record_conversion_activity_metadata(referrer):
    referral_id = register_referral("ABC123", _contact())
    record_conversion(referral_id, BookingEvent(referee_email="x@y.com", booking_amount=Decimal("120.00")))
    entry = ActivityLog.objects.get(type="referral_converted")
    assert entry.metadata["referral_id"] == referral_id
    assert entry.metadata["referrer_id"] == referrer.pk
    assert entry.metadata["referee_email"] == "x@y.com"
    assert entry.metadata["booking_amount"] == "120.00"


def test_record_conversion_unknown_referral(company):
    with pytest.raises(NotFound):
        record_conversion(9999)


def test_record_conversion_other_company(referrer, other_company):
    referral_id = register_referral("ABC123", _contact())
    with pytest.raises(NotFound):
        record_conversion(referral_id, company=other_company)



def test_record_conversion_lost_race_is_absorbed(referrer, monkeypatch):
    from dashboard.services import attribution

    referral_id = register_referral("ABC123", _contact())
    stale = Referral.objects.get(pk=referral_id)
    first = record_conversion(referral_id, BookingEvent(source="booking"))

    # Instance lue avant la conversion concurrente (webhook rejoué vs action manuelle)
    monkeypatch.setattr(attribution, "_get_referral", lambda pk, company: stale)
    assert stale.converted is False
    result = record_conversion(referral_id, BookingEvent(source="manual"))

    assert result.converted_now is False
    assert result.referral.converted is True
    assert result.referral.converted_at == first.referral.converted_at
    assert ActivityLog.objects.filter(type="referral_converted").count() == 1
    assert ActivityLog.objects.filter(type="referral_reward_notified").count() == 1


def test_register_referral_concurrent_insert_is_duplicate(referrer, monkeypatch):
    register_referral("ABC123", _contact())
    real_exists = QuerySet.exists

    def unseen_exists(qs):
        # Insertion concurrente pas encore visible au moment du contrôle
        return False if qs.model is Referral else real_exists(qs)

    monkeypatch.setattr(QuerySet, "exists", unseen_exists)
    with pytest.raises(DuplicateReferral):
        register_referral("ABC123", _contact())
    monkeypatch.undo()

    assert Referral.objects.count() == 1
    assert ActivityLog.objects.filter(type="referral_created").count() == 1


def test_conversion_notifies_referrer_and_referee(referrer):
    referral_id = register_referral("ABC123", _contact(phone="+12025550199"))
    record_conversion(referral_id)
    record_conversion(referral_id)

    notice = SmsMessage.objects.get(client=referrer, message_type="reward_notification")
    assert "Xavier Y just booked" in notice.body
    assert notice.status == "sent"
    entry = ActivityLog.objects.get(type="referral_reward_notified")
    assert entry.metadata == {
        "referral_id": referral_id, "referrer_id": referrer.pk, "referrer": "sent", "referee": "sent",
    }


def test_conversion_notifications_can_be_disabled(referrer, settings):
    settings.SMS_CONVERSION_NOTIFICATIONS = False
    record_conversion(register_referral("ABC123", _contact(phone="+12025550199")))
    assert not SmsMessage.objects.exists()
    assert not ActivityLog.objects.filter(type="referral_reward_notified").exists()

# -------------------------------------------------------------
# process_booking_event
# -------------------------------------------------------------

def test_booking_event_converts_matching_referral(referrer):
    referral_id = register_referral("ABC123", _contact())
    results = process_booking_event(referrer.company, BookingEvent(referee_email="X@y.com"))
    assert [r.referral.pk for r in results] == [referral_id]
    assert Referral.objects.get(pk=referral_id).converted is True

    # Même réservation rejouée : rien de plus
    assert process_booking_event(referrer.company, BookingEvent(referee_email="x@y.com")) == []
    assert ActivityLog.objects.filter(type="referral_converted").count() == 1


def test_booking_event_matches_by_phone(referrer):
    referral_id = register_referral("ABC123", _contact(phone="+1 202 555 0199"))
    results = process_booking_event(referrer.company, BookingEvent(referee_phone="2025550199"))
    assert [r.referral.pk for r in results] == [referral_id]


def test_booking_event_requires_contact(company):
    with pytest.raises(ValidationError):
        process_booking_event(company, BookingEvent())


def test_booking_sends_single_thank_you_with_code(referrer):
    process_booking_event(referrer.company, BookingEvent(referee_email="ALICE@test.co", source="booking"))
    process_booking_event(referrer.company, BookingEvent(referee_phone="202-555-0143"))

    (thanks,) = SmsMessage.objects.filter(client=referrer, message_type="thank_you")
    assert "ABC123" in thanks.body
    assert thanks.body.startswith("Thanks Alice Martin!")
    assert ActivityLog.objects.filter(type="client_thank_you_sent").count() == 1
    referrer.refresh_from_db()
    assert referrer.thank_you_sent_at is not None


def test_booking_for_unknown_client_sends_no_thank_you(referrer):
    process_booking_event(referrer.company, BookingEvent(referee_email="nobody@y.com"))
    assert not SmsMessage.objects.exists()


# -------------------------------------------------------------
# listes
# -------------------------------------------------------------

def test_list_pending_oldest_first_with_referrer(referrer):
    recent = _mk_referral(referrer.company, email="a@y.com", days_ago=2)
    old = _mk_referral(referrer.company, email="b@y.com", days_ago=10)
    _mk_referral(referrer.company, email="c@y.com", converted=True)

    items = list(list_pending(referrer.company))
    assert [i.referral.pk for i in items] == [old.pk, recent.pk]
    assert items[0].days_since_shared == 10
    assert items[0].referrer == referrer


def test_list_pending_max_age(referrer):
    _mk_referral(referrer.company, email="a@y.com", days_ago=40)
    fresh = _mk_referral(referrer.company, email="b@y.com", days_ago=3)
    assert [i.referral.pk for i in list_pending(referrer.company, max_age_days=30)] == [fresh.pk]


def test_list_pending_unknown_referrer_code(company):
    _mk_referral(company, code="GHOST1")
    (item,) = list(list_pending(company))
    assert item.referrer is None


def test_list_conversions_window(referrer):
    recent = _mk_referral(referrer.company, email="a@y.com", converted=True)
    old = _mk_referral(referrer.company, email="b@y.com", converted=True)
    Referral.objects.filter(pk=old.pk).update(converted_at=timezone.now() - timedelta(days=20))

    rows = list_conversions(referrer.company, days=7)
    assert [r.referral.pk for r in rows] == [recent.pk]
    assert rows[0].reward is None
    assert rows[0].referrer == referrer


# -------------------------------------------------------------
# divers
# -------------------------------------------------------------

def test_referral_code_auto_issued_and_immutable(company):
    c = Client.objects.create(company=company, name="Bob")
    assert c.referral_code.startswith("REF-") and len(c.referral_code) == 12
    c.referral_code = "REF-CHANGED"
    with pytest.raises(ValidationError):
        c.save()


def test_referral_landing(referrer):
    data = referral_landing("abc123")
    assert data["referrer_first_name"] == "Alice"
    assert data["company"] == "Test Co"
    assert data["discount"] == "$25"


def test_send_reminder_logs_activity(referrer):
    referral_id = register_referral("ABC123", _contact(phone="+12025550199"))
    result = send_reminder(referral_id)
    assert result.ok is True
    entry = ActivityLog.objects.get(type="referral_reminder_sent")
    assert entry.metadata["referral_id"] == referral_id


def test_send_reminder_requires_phone(referrer):
    referral_id = register_referral("ABC123", _contact())
    with pytest.raises(ValidationError):
        send_reminder(referral_id)
