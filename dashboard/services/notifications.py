# dashboard/services/notifications.py
"""
SMS automatiques du cycle de parrainage :
  - remerciement du client après une réservation terminée (avec son code),
  - avis de récompense au parrain et au filleul quand un parrainage est converti.

Un échec opérateur est journalisé, jamais levé : la conversion reste acquise.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from core.utils.phones import normalize_or_none
from dashboard.models import ActivityLog, Client, Referral
from dashboard.services.activity import log_activity

logger = logging.getLogger(__name__)

THANK_YOU_TEMPLATE = (
    "Thanks {clientName}! We appreciate your business! "
    "Share your code {referralCode} and your friends get {referralDiscount} off."
)
REFERRER_REWARD_TEMPLATE = "{referee_name} just booked with your code: you both earned {discount} off your next visit!"
REFEREE_REWARD_TEMPLATE = "Thanks to {referrer_name}'s referral, you both earned {discount} off your next visit!"


def find_booked_client(company, email: Optional[str], phone: Optional[str]) -> Optional[Client]:
    email = (email or "").strip().lower()
    phone = normalize_or_none(phone)
    query = Q()
    if email:
        query |= Q(email__iexact=email)
    if phone:
        query |= Q(phone=phone)
    if not query:
        return None
    return Client.objects.filter(query, company=company, is_active=True).order_by("id").first()


def send_thank_you(client: Client) -> bool:
    """Remerciement unique par client ; renvoie True si un SMS est parti maintenant."""
    from sms.services.conversations import send_reply

    if not settings.SMS_AUTO_THANK_YOU or not client.phone:
        return False
    # UPDATE conditionnel : une réservation rejouée n'envoie rien de plus
    claimed = Client.objects.filter(pk=client.pk, thank_you_sent_at__isnull=True).update(
        thank_you_sent_at=timezone.now(),
    )
    if not claimed:
        logger.debug("thank-you already sent to client=%s", client.pk)
        return False

    message = send_reply(client.pk, THANK_YOU_TEMPLATE, message_type="thank_you")
    if message.status == "failed":
        logger.warning("thank-you sms failed client=%s: %s", client.pk, message.error_message)
        return False
    log_activity(
        client.company,
        ActivityLog.Type.THANK_YOU_SENT,
        f"Remerciement envoyé à {client.name}",
        client_id=client.pk,
        message_id=message.pk,
    )
    return True


def _send(company, client: Optional[Client], phone: str, body: str) -> str:
    """Client connu : message rattaché à sa conversation. Sinon : envoi direct."""
    from sms.services.carrier import OutboundSms, get_carrier
    from sms.services.conversations import send_reply

    if client is not None and client.phone:
        return send_reply(client.pk, body, message_type="reward_notification").status
    if not phone:
        return "skipped"
    result = get_carrier().send(OutboundSms(to=phone, body=body, sender=company.sms_number or None))
    if not result.ok:
        logger.warning("reward notification to %s failed: %s", phone, result.error)
    return "sent" if result.ok else "failed"


def notify_conversion(referral: Referral, referrer: Optional[Client]) -> dict:
    """Prévient les deux parties d'un parrainage converti."""
    if not settings.SMS_CONVERSION_NOTIFICATIONS or referrer is None:
        return {}

    company = referral.company
    referee = Client.objects.filter(
        company=company, email__iexact=referral.referee_email, is_active=True,
    ).order_by("id").first()
    discount = company.referral_discount

    statuses = {
        "referrer": _send(company, referrer, referrer.phone,
                          REFERRER_REWARD_TEMPLATE.format(referee_name=referral.referee_name, discount=discount)),
        "referee": _send(company, referee, referral.referee_phone,
                         REFEREE_REWARD_TEMPLATE.format(referrer_name=referrer.name, discount=discount)),
    }
    log_activity(
        company,
        ActivityLog.Type.REWARD_NOTIFIED,
        f"{referrer.name} et {referral.referee_name} prévenus de leur récompense",
        referral_id=referral.pk,
        referrer_id=referrer.pk,
        **statuses,
    )
    return statuses
