import pytest
from django.urls import reverse

from dashboard.models import Client
from sms.models import EarlyDeliveryStatus, SmsMessage
from sms.services import conversations as conv

pytestmark = pytest.mark.django_db


def _mk_client(company, phone="+12025550111"):
    return Client.objects.create(company=company, name="Client", phone=phone)


def test_conversations_require_login(client):
    resp = client.get(reverse("sms:conversations"))
    assert resp.status_code in (302, 301)


def test_conversation_list_and_detail(staff_client, company):
    c = _mk_client(company)
    conv.append_message(c.pk, "inbound", "Salut", c.phone, company.sms_number)

    resp = staff_client.get(reverse("sms:conversations"), {"limit": 10})
    data = resp.json()
    assert resp.status_code == 200
    assert data["total"] == 1
    assert data["results"][0]["unread_count"] == 1

    resp = staff_client.get(reverse("sms:conversation_detail", kwargs={"client_id": c.pk}))
    assert resp.json()["conversation"]["messages"][0]["body"] == "Salut"


def test_conversation_detail_other_company_is_404(staff_client, other_company):
    c = _mk_client(other_company)
    resp = staff_client.get(reverse("sms:conversation_detail", kwargs={"client_id": c.pk}))
    assert resp.status_code == 404


def test_mark_read_json(staff_client, company):
    c = _mk_client(company)
    msg = conv.append_message(c.pk, "inbound", "Salut", c.phone, company.sms_number)
    resp = staff_client.post(reverse("sms:mark_read"), {"ids": [msg.pk]}, content_type="application/json")
    assert resp.json() == {"ok": True, "marked": 1}
    assert staff_client.get(reverse("sms:unread_count")).json()["count"] == 0


def test_reply_validation_and_send(staff_client, company):
    c = _mk_client(company)
    resp = staff_client.post(reverse("sms:reply"), {"client_id": c.pk, "message": " "},
                             content_type="application/json")
    assert resp.status_code == 400

    resp = staff_client.post(reverse("sms:reply"), {"client_id": c.pk, "message": "Bonjour"},
                             content_type="application/json")
    assert resp.status_code == 200
    assert resp.json()["message"]["status"] == "sent"


def test_inbound_webhook_returns_twiml(client, company):
    _mk_client(company)
    payload = {"MessageSid": "SM100", "From": "+12025550111", "To": "+15005550006", "Body": "Hello"}
    resp = client.post(reverse("sms:inbound_webhook"), payload)
    assert resp.status_code == 200
    assert resp["Content-Type"].startswith("text/xml")
    # Rejeu opérateur
    client.post(reverse("sms:inbound_webhook"), payload)
    assert SmsMessage.objects.count() == 1


def test_inbound_webhook_rejects_bad_signature(client, company, settings):
    settings.TWILIO = {**settings.TWILIO, "VALIDATE_WEBHOOKS": True, "AUTH_TOKEN": "secret"}
    payload = {"MessageSid": "SM101", "From": "+12025550111", "To": "+15005550006", "Body": "Hello"}
    resp = client.post(reverse("sms:inbound_webhook"), payload, HTTP_X_TWILIO_SIGNATURE="forged")
    assert resp.status_code == 403


def test_status_webhook_updates_delivery(client, company):
    msg = conv.send_reply(_mk_client(company).pk, "Bonjour")
    resp = client.post(reverse("sms:status_webhook"),
                       {"MessageSid": msg.provider_message_id, "MessageStatus": "delivered"})
    assert resp.status_code == 200
    assert SmsMessage.objects.get(pk=msg.pk).status == "delivered"


def test_status_webhook_unknown_sid_is_accepted(client, company):
    resp = client.post(reverse("sms:status_webhook"), {"MessageSid": "SMX", "MessageStatus": "delivered"})
    assert resp.status_code == 200
    early = EarlyDeliveryStatus.objects.get()
    assert (early.provider_message_id, early.carrier_status) == ("SMX", "delivered")
