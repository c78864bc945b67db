# sms/services/conversations.py
"""
Agrégation des SMS en conversations par client.

Toute vue dérivée (non-lus, aperçu, ordre) est recalculée par
project_conversation à partir de l'ensemble des messages : jamais
maintenue de façon incrémentale.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from asgiref.sync import sync_to_async
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Max
from django.utils import timezone

from accounts.models import Company
from core.exceptions import NotFound
from core.utils.phones import normalize_or_none
from dashboard.models import ActivityLog, Client
from dashboard.services.activity import log_activity
from sms.models import EarlyDeliveryStatus, SmsMessage
from sms.services.carrier import OutboundSms, get_carrier, map_carrier_status

logger = logging.getLogger(__name__)

INBOUND = SmsMessage.Direction.INBOUND
OUTBOUND = SmsMessage.Direction.OUTBOUND

PAGE_DEFAULT = 20
PAGE_MAX = 100

OPT_OUT_KEYWORDS = {"STOP", "STOPALL", "UNSUBSCRIBE", "CANCEL", "END", "QUIT"}

# Statuts de livraison : transitions autorisées (état cible -> états sources)
_DELIVERY_SOURCES = {
    "sent": ("queued",),
    "delivered": ("queued", "sent"),
    "failed": ("queued", "sent"),
}


# =========================
# Vues dérivées
# =========================

@dataclass(frozen=True)
class Conversation:
    client_id: int
    messages: tuple
    unread_count: int

    @property
    def last_message(self) -> Optional[SmsMessage]:
        return self.messages[-1] if self.messages else None


@dataclass(frozen=True)
class ConversationSummary:
    client_id: int
    client_name: str
    client_phone: str
    last_message_at: object
    last_direction: str
    preview: str
    unread_count: int


@dataclass(frozen=True)
class ConversationPage:
    items: list
    total: int
    limit: int
    offset: int


@dataclass
class InboundSms:
    provider_message_id: str
    from_number: str
    to_number: str
    body: str


def project_conversation(client_id: int, messages: Iterable[SmsMessage]) -> Conversation:
    """Projection pure : tri (timestamp, id) et compte des entrants non lus."""
    ordered = tuple(sorted(messages, key=lambda m: (m.timestamp, m.id)))
    unread = sum(1 for m in ordered if m.direction == INBOUND and not m.is_read)
    return Conversation(client_id=client_id, messages=ordered, unread_count=unread)


def make_preview(body: str, length: Optional[int] = None) -> str:
    length = length or settings.SMS_PREVIEW_LENGTH
    body = " ".join((body or "").split())
    if len(body) <= length:
        return body
    return body[: length - 1] + "…"


# =========================
# Helpers
# =========================

def _get_client(client_id: int, company: Optional[Company]) -> Client:
    qs = Client.objects.select_related("company").filter(pk=client_id)
    if company is not None:
        qs = qs.filter(company=company)
    client = qs.first()
    if client is None:
        raise NotFound(f"Client {client_id} introuvable.", client_id=client_id)
    return client


def _find_client_by_phone(company: Company, phone: str) -> Optional[Client]:
    normalized = normalize_or_none(phone)
    if not normalized:
        return None
    qs = Client.objects.filter(company=company, is_active=True)
    client = qs.filter(phone=normalized).order_by("id").first()
    if client is not None:
        return client
    # Numéros enregistrés dans un autre format
    for candidate in qs.exclude(phone="").order_by("id"):
        if normalize_or_none(candidate.phone) == normalized:
            return candidate
    return None


def render_placeholders(body: str, client: Client) -> str:
    return (
        body.replace("{clientName}", client.name or "")
        .replace("{referralCode}", client.referral_code or "")
        .replace("{referralDiscount}", client.company.referral_discount or "")
    )


def _append(client: Client, *, direction: str, body: str, from_number: str, to_number: str,
            message_type: str, provider_message_id: Optional[str], status: Optional[str],
            timestamp=None) -> tuple[SmsMessage, bool]:
    if provider_message_id:
        existing = SmsMessage.objects.filter(provider_message_id=provider_message_id).first()
        if existing is not None:
            logger.debug("sms duplicate provider id=%s ignored", provider_message_id)
            return existing, False

    inbound = direction == INBOUND
    try:
        with transaction.atomic():
            message = SmsMessage.objects.create(
                company=client.company,
                client=client,
                direction=direction,
                from_number=from_number or "",
                to_number=to_number or "",
                body=body or "",
                message_type=message_type,
                provider_message_id=provider_message_id or None,
                status=status or (SmsMessage.Status.RECEIVED if inbound else SmsMessage.Status.QUEUED),
                # Horodatage attribué à l'enregistrement
                timestamp=timestamp or timezone.now(),
                is_read=not inbound,
            )
    except IntegrityError:
        # Webhook rejoué en parallèle
        existing = SmsMessage.objects.filter(provider_message_id=provider_message_id).first()
        if existing is None:
            raise
        return existing, False

    logger.info("sms %s stored id=%s client=%s", direction, message.pk, client.pk)
    return message, True


# =========================
# Opérations
# =========================

def append_message(client_id: int, direction: str, body: str, from_number: str, to_number: str, *,
                   company: Optional[Company] = None, message_type: str = "reply",
                   provider_message_id: Optional[str] = None, status: Optional[str] = None,
                   timestamp=None) -> SmsMessage:
    if direction not in SmsMessage.Direction.values:
        raise ValidationError({"direction": f"Direction inconnue : {direction}"})
    if direction == OUTBOUND and not (body or "").strip():
        raise ValidationError({"body": "Message vide."})
    client = _get_client(client_id, company)
    message, _ = _append(
        client, direction=direction, body=body, from_number=from_number, to_number=to_number,
        message_type=message_type, provider_message_id=provider_message_id, status=status,
        timestamp=timestamp,
    )
    return message


def mark_read(message_ids: Sequence[int], *, company: Optional[Company] = None) -> int:
    """Passe à lu les entrants non lus donnés ; les autres ids sont ignorés. Idempotent."""
    try:
        ids = {int(i) for i in message_ids}
    except (TypeError, ValueError):
        raise ValidationError({"ids": "Identifiants de messages invalides."})
    if not ids:
        return 0

    qs = SmsMessage.objects.filter(pk__in=ids, direction=INBOUND, is_read=False)
    if company is not None:
        qs = qs.filter(company=company)
    # UPDATE conditionnel : un message déjà lu n'est pas recompté
    flipped = qs.update(is_read=True)
    logger.info("sms mark_read requested=%s flipped=%s", len(ids), flipped)
    return flipped


def get_conversation(client_id: int, *, company: Optional[Company] = None) -> Conversation:
    """Relue et projetée à chaque appel : non-lus toujours issus de l'état courant."""
    _get_client(client_id, company)
    messages = SmsMessage.objects.filter(client_id=client_id).order_by("timestamp", "id")
    return project_conversation(client_id, messages)


def list_conversations(company: Company, limit: int = PAGE_DEFAULT, offset: int = 0) -> ConversationPage:
    """Conversations triées par dernier message décroissant (départage : client id décroissant)."""
    limit = max(1, min(int(limit), PAGE_MAX))
    offset = max(0, int(offset))

    grouped = (
        SmsMessage.objects.filter(company=company)
        .values("client_id")
        .annotate(last_ts=Max("timestamp"))
        .order_by("-last_ts", "-client_id")
    )
    total = grouped.count()
    rows = list(grouped[offset: offset + limit])
    clients = Client.objects.in_bulk([r["client_id"] for r in rows])

    items = []
    for row in rows:
        client = clients[row["client_id"]]
        conversation = get_conversation(client.pk)
        last = conversation.last_message
        items.append(ConversationSummary(
            client_id=client.pk,
            client_name=client.name,
            client_phone=client.phone,
            last_message_at=last.timestamp if last else row["last_ts"],
            last_direction=last.direction if last else "",
            preview=make_preview(last.body) if last else "",
            unread_count=conversation.unread_count,
        ))
    return ConversationPage(items=items, total=total, limit=limit, offset=offset)


def unread_count(company: Company) -> int:
    return SmsMessage.objects.filter(company=company, direction=INBOUND, is_read=False).count()


def update_delivery_status(provider_message_id: str, carrier_status: str,
                           error: Optional[str] = None) -> SmsMessage:
    """Réconcilie le statut de livraison remonté par l'opérateur ; delivered/failed sont définitifs."""
    message = SmsMessage.objects.filter(
        provider_message_id=provider_message_id, direction=OUTBOUND,
    ).first()
    if message is None:
        raise NotFound(f"Message opérateur {provider_message_id} introuvable.")

    target = map_carrier_status(carrier_status)
    sources = _DELIVERY_SOURCES.get(target)
    if not sources:
        logger.debug("sms status %s ignored for %s", carrier_status, provider_message_id)
        return message

    fields = {"status": target}
    if target == SmsMessage.Status.FAILED:
        fields["error_message"] = (error or carrier_status)[:500]
    updated = SmsMessage.objects.filter(pk=message.pk, status__in=sources).update(**fields)
    if updated:
        message.refresh_from_db()
        logger.info("sms status id=%s -> %s", message.pk, target)
    else:
        logger.debug("sms status id=%s stays %s (got %s)", message.pk, message.status, carrier_status)
    return message


def record_early_status(provider_message_id: str, carrier_status: str,
                        error: Optional[str] = None) -> EarlyDeliveryStatus:
    """Garde un statut arrivé avant le rattachement de l'identifiant opérateur."""
    logger.info("sms status %s for unknown sid=%s kept for replay", carrier_status, provider_message_id)
    return EarlyDeliveryStatus.objects.create(
        provider_message_id=provider_message_id,
        carrier_status=carrier_status,
        error=(error or "")[:500],
    )


def _replay_early_statuses(provider_message_id: str) -> None:
    pending = list(EarlyDeliveryStatus.objects.filter(provider_message_id=provider_message_id))
    for early in pending:
        update_delivery_status(provider_message_id, early.carrier_status, early.error or None)
    if pending:
        EarlyDeliveryStatus.objects.filter(pk__in=[e.pk for e in pending]).delete()


def ingest_inbound(event: InboundSms) -> Optional[SmsMessage]:
    """SMS entrant opérateur -> entreprise (par numéro destinataire) -> client (par expéditeur)."""
    existing = SmsMessage.objects.filter(provider_message_id=event.provider_message_id).first()
    if existing is not None:
        logger.debug("inbound duplicate sid=%s", event.provider_message_id)
        return existing

    to_number = normalize_or_none(event.to_number) or event.to_number
    company = Company.objects.filter(sms_number=to_number, is_active=True).first()
    if company is None:
        logger.warning("inbound sms for unknown number to=%s sid=%s", event.to_number, event.provider_message_id)
        return None

    client = _find_client_by_phone(company, event.from_number)
    if client is None:
        log_activity(
            company,
            ActivityLog.Type.SMS_UNMATCHED,
            f"SMS reçu d'un numéro inconnu : {event.from_number}",
            from_number=event.from_number,
            body=(event.body or "")[:160],
            provider_id=event.provider_message_id,
        )
        return None

    message, created = _append(
        client,
        direction=INBOUND,
        body=event.body,
        from_number=normalize_or_none(event.from_number) or event.from_number,
        to_number=to_number,
        message_type="reply",
        provider_message_id=event.provider_message_id,
        status=SmsMessage.Status.RECEIVED,
    )
    if not created:
        return message

    log_activity(
        company,
        ActivityLog.Type.SMS_RECEIVED,
        f"SMS reçu de {client.name}",
        client_id=client.pk,
        message_id=message.pk,
    )
    if (event.body or "").strip().upper() in OPT_OUT_KEYWORDS:
        log_activity(
            company,
            ActivityLog.Type.SMS_OPT_OUT,
            f"{client.name} s'est désinscrit(e) des SMS",
            client_id=client.pk,
            message_id=message.pk,
        )
    return message


def send_reply(client_id: int, body: str, *, company: Optional[Company] = None,
               message_type: str = "reply") -> SmsMessage:
    """
    Enregistre le sortant (queued) puis le transmet à l'opérateur.
    Un échec opérateur est porté par le message (failed + error_message), pas levé.
    """
    client = _get_client(client_id, company)
    if not (body or "").strip():
        raise ValidationError({"message": "Message vide."})
    if not client.phone:
        raise ValidationError({"client_id": "Ce client n'a pas de numéro de téléphone."})

    company = client.company
    sender = company.sms_number or settings.TWILIO.get("FROM_NUMBER", "")
    text = render_placeholders(body, client)
    message, _ = _append(
        client, direction=OUTBOUND, body=text, from_number=sender, to_number=client.phone,
        message_type=message_type, provider_message_id=None, status=SmsMessage.Status.QUEUED,
    )

    result = get_carrier().send(OutboundSms(
        to=client.phone,
        body=text,
        sender=sender or None,
        status_callback=settings.TWILIO.get("STATUS_CALLBACK_URL") or None,
    ))

    if result.ok:
        fields = {"status": SmsMessage.Status.SENT}
        if result.provider_id:
            fields["provider_message_id"] = result.provider_id
        SmsMessage.objects.filter(pk=message.pk, status=SmsMessage.Status.QUEUED).update(**fields)
        if result.provider_id:
            _replay_early_statuses(result.provider_id)
        log_activity(company, ActivityLog.Type.SMS_SENT, f"SMS envoyé à {client.name}",
                     client_id=client.pk, message_id=message.pk)
    else:
        SmsMessage.objects.filter(pk=message.pk, status=SmsMessage.Status.QUEUED).update(
            status=SmsMessage.Status.FAILED, error_message=(result.error or "")[:500],
        )
        log_activity(company, ActivityLog.Type.SMS_FAILED, f"Échec d'envoi du SMS à {client.name}",
                     client_id=client.pk, message_id=message.pk, error=result.error)
        logger.error("sms send failed id=%s client=%s: %s", message.pk, client.pk, result.error)

    message.refresh_from_db()
    return message


def retry_message(message_id: int, *, company: Optional[Company] = None) -> SmsMessage:
    """Renvoie un sortant en échec sous la forme d'un nouveau message."""
    qs = SmsMessage.objects.filter(pk=message_id)
    if company is not None:
        qs = qs.filter(company=company)
    original = qs.first()
    if original is None:
        raise NotFound(f"Message {message_id} introuvable.", message_id=message_id)
    if original.direction != OUTBOUND or original.status != SmsMessage.Status.FAILED:
        raise ValidationError("Seul un SMS sortant en échec peut être renvoyé.")
    return send_reply(original.client_id, original.body, company=company, message_type=original.message_type)


# =========================
# Sérialisation JSON
# =========================

def serialize_message(message: SmsMessage) -> dict:
    return {
        "id": message.id,
        "client_id": message.client_id,
        "direction": message.direction,
        "from_number": message.from_number,
        "to_number": message.to_number,
        "body": message.body,
        "message_type": message.message_type,
        "status": message.status,
        "error_message": message.error_message or None,
        "timestamp": message.timestamp.isoformat(),
        "is_read": message.is_read,
    }


def serialize_conversation(conversation: Conversation) -> dict:
    return {
        "client_id": conversation.client_id,
        "unread_count": conversation.unread_count,
        "messages": [serialize_message(m) for m in conversation.messages],
    }


def serialize_summary(item: ConversationSummary) -> dict:
    return {
        "client_id": item.client_id,
        "client_name": item.client_name,
        "client_phone": item.client_phone,
        "last_message_at": item.last_message_at.isoformat() if item.last_message_at else None,
        "last_direction": item.last_direction,
        "preview": item.preview,
        "unread_count": item.unread_count,
    }


# =========================
# Variantes async (écritures de la session tableau de bord)
# =========================

amark_read = sync_to_async(mark_read)
asend_reply = sync_to_async(send_reply)
aretry_message = sync_to_async(retry_message)
