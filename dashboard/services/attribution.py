# dashboard/services/attribution.py
"""
Attribution des parrainages : code -> parrain, cycle EN ATTENTE -> CONVERTI.

Chaque écriture est gardée côté base (UPDATE conditionnel, contrainte
d'unicité partielle) : appels manuels, webhooks et relances peuvent se
chevaucher sans double conversion ni double journalisation.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Iterator, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import IntegrityError, transaction
from django.utils import timezone

from accounts.models import Company
from core.exceptions import (
    AlreadyConverted,
    DuplicateReferral,
    NotFound,
    UnknownReferralCode,
)
from core.utils.phones import normalize_or_none
from dashboard.models import ActivityLog, Client, Referral
from dashboard.services.activity import log_activity
from dashboard.services.notifications import find_booked_client, notify_conversion, send_thank_you
from dashboard.services.transitions import convert, referral_state

logger = logging.getLogger(__name__)

REMINDER_TEMPLATE = (
    "Hi {referee_name}! Just a friendly reminder about your referral from {referrer_code}. "
    "Ready to book your service? Reply to this message or call us!"
)


# =========================
# Modèles de données
# =========================

@dataclass
class RefereeContact:
    name: str
    email: str
    phone: str = ""


@dataclass
class BookingEvent:
    referee_email: Optional[str] = None
    referee_phone: Optional[str] = None
    booking_amount: Optional[Decimal] = None
    source: str = "booking"


@dataclass
class ConversionResult:
    referral: Referral
    converted_now: bool


@dataclass
class PendingReferral:
    referral: Referral
    referrer: Optional[Client]
    days_since_shared: int


@dataclass
class ConversionRow:
    referral: Referral
    referrer: Optional[Client]
    reward: object  # rewards.models.RewardRecord | None


@dataclass
class ReminderResult:
    ok: bool
    provider_id: Optional[str]
    error: Optional[str] = None


# =========================
# Helpers
# =========================

def _scoped(qs, company: Optional[Company]):
    return qs.filter(company=company) if company is not None else qs


def _get_referral(referral_id: int, company: Optional[Company]) -> Referral:
    referral = _scoped(Referral.objects.select_related("company"), company).filter(pk=referral_id).first()
    if referral is None:
        raise NotFound(f"Parrainage {referral_id} introuvable.", referral_id=referral_id)
    return referral


def _clean_contact(referee: RefereeContact) -> RefereeContact:
    errors = {}
    name = (referee.name or "").strip()
    email = (referee.email or "").strip().lower()
    phone = (referee.phone or "").strip()
    if not name:
        errors["name"] = "Nom du filleul requis."
    try:
        validate_email(email)
    except ValidationError:
        errors["email"] = "Email du filleul invalide."
    if phone:
        normalized = normalize_or_none(phone)
        if normalized is None:
            errors["phone"] = "Téléphone du filleul invalide."
        phone = normalized or ""
    if errors:
        raise ValidationError(errors)
    return RefereeContact(name=name, email=email, phone=phone)


def resolve_code(code: str, company: Optional[Company] = None) -> Client:
    """Code -> client parrain (insensible à la casse, espaces ignorés)."""
    code = (code or "").strip()
    if not code:
        raise ValidationError({"code": "Code de parrainage requis."})
    qs = Client.objects.select_related("company").filter(
        referral_code__iexact=code, is_active=True, company__is_active=True,
    )
    referrer = _scoped(qs, company).first()
    if referrer is None:
        raise UnknownReferralCode(f"Code de parrainage inconnu : {code}", code=code)
    return referrer


def referrers_by_code(codes) -> dict[str, Client]:
    codes = {c for c in codes if c}
    return {c.referral_code: c for c in Client.objects.filter(referral_code__in=codes)}


# =========================
# Opérations
# =========================

def register_referral(code: str, referee: RefereeContact, *, company: Optional[Company] = None) -> int:
    """Crée un parrainage EN ATTENTE pour le parrain du code, retourne son id."""
    referrer = resolve_code(code, company)
    contact = _clean_contact(referee)
    company = referrer.company

    duplicate = Referral.objects.filter(
        company=company,
        referrer_code=referrer.referral_code,
        referee_email__iexact=contact.email,
        converted=False,
    ).exists()
    if duplicate:
        raise DuplicateReferral("Un parrainage en attente existe déjà pour ce filleul.", email=contact.email)

    try:
        with transaction.atomic():
            referral = Referral.objects.create(
                company=company,
                referrer_code=referrer.referral_code,
                referee_name=contact.name,
                referee_email=contact.email,
                referee_phone=contact.phone,
            )
            log_activity(
                company,
                ActivityLog.Type.REFERRAL_CREATED,
                f"{contact.name} a été parrainé(e) par {referrer.name}",
                referral_id=referral.pk,
                referrer_id=referrer.pk,
                referee_email=contact.email,
            )
    except IntegrityError:
        # Insertion concurrente perdue sur la contrainte partielle
        raise DuplicateReferral("Un parrainage en attente existe déjà pour ce filleul.", email=contact.email)

    logger.info("referral created id=%s code=%s company=%s", referral.pk, referrer.referral_code, company.pk)
    return referral.pk


def record_conversion(referral_id: int, event: Optional[BookingEvent] = None, *,
                      company: Optional[Company] = None) -> ConversionResult:
    """
    EN ATTENTE -> CONVERTI. Idempotent : un second appel rend le parrainage
    tel quel (converted_now=False), sans nouvelle date ni nouvelle activité.
    """
    referral = _get_referral(referral_id, company)

    with transaction.atomic():
        try:
            convert(referral_state(referral.converted))
        except AlreadyConverted:
            logger.debug("referral %s already converted, ignored", referral.pk)
            return ConversionResult(referral=referral, converted_now=False)

        now = timezone.now()
        # UPDATE conditionnel : seul le premier écrivain passe
        updated = Referral.objects.filter(pk=referral.pk, converted=False).update(
            converted=True, converted_at=now,
        )
        if not updated:
            referral.refresh_from_db()
            logger.debug("referral %s converted concurrently, ignored", referral.pk)
            return ConversionResult(referral=referral, converted_now=False)

        referral.converted = True
        referral.converted_at = now
        referrer = Client.objects.filter(referral_code=referral.referrer_code).first()
        amount = event.booking_amount if event else None
        log_activity(
            referral.company,
            ActivityLog.Type.REFERRAL_CONVERTED,
            f"Parrainage de {referral.referee_name} converti",
            referral_id=referral.pk,
            referrer_id=referrer.pk if referrer else None,
            referee_email=referral.referee_email,
            booking_amount=str(amount) if amount is not None else None,
            source=event.source if event else "manual",
        )

    logger.info("referral converted id=%s company=%s", referral.pk, referral.company_id)
    # Hors transaction : un échec d'envoi ne remet pas la conversion en cause
    notify_conversion(referral, referrer)
    return ConversionResult(referral=referral, converted_now=True)


def process_booking_event(company: Company, event: BookingEvent) -> list[ConversionResult]:
    """Convertit les parrainages en attente dont le filleul correspond à la réservation."""
    email = (event.referee_email or "").strip().lower()
    phone = normalize_or_none(event.referee_phone)
    if not email and not phone:
        raise ValidationError("Email ou téléphone du client requis.")

    candidates = Referral.objects.filter(company=company, converted=False)
    ids = set()
    if email:
        ids.update(candidates.filter(referee_email__iexact=email).values_list("pk", flat=True))
    if phone:
        ids.update(candidates.filter(referee_phone=phone).values_list("pk", flat=True))

    results = [record_conversion(pk, event, company=company) for pk in sorted(ids)]
    booked = find_booked_client(company, email, phone)
    if booked is not None:
        send_thank_you(booked)
    logger.info(
        "booking event company=%s matched=%s converted=%s",
        company.pk, len(results), sum(1 for r in results if r.converted_now),
    )
    return results


def list_pending(company: Company, max_age_days: Optional[int] = None) -> Iterator[PendingReferral]:
    """Parrainages en attente, du plus ancien au plus récent, recalculés à chaque appel."""
    now = timezone.now()
    qs = Referral.objects.filter(company=company, converted=False)
    if max_age_days is not None:
        qs = qs.filter(created_at__gte=now - timedelta(days=max_age_days))
    referrals = list(qs.order_by("created_at", "id"))
    referrers = referrers_by_code(r.referrer_code for r in referrals)
    for referral in referrals:
        yield PendingReferral(
            referral=referral,
            referrer=referrers.get(referral.referrer_code),
            days_since_shared=(now - referral.created_at).days,
        )


def list_conversions(company: Company, days: Optional[int] = None) -> list[ConversionRow]:
    """Conversions récentes (plus récentes d'abord) avec la décision de récompense."""
    if days is None:
        days = settings.REFERRAL_CONVERSION_WINDOW_DAYS
    since = timezone.now() - timedelta(days=days)
    referrals = list(
        Referral.objects.filter(company=company, converted=True, converted_at__gte=since)
        .select_related("reward_record")
        .order_by("-converted_at", "-id")
    )
    referrers = referrers_by_code(r.referrer_code for r in referrals)
    return [
        ConversionRow(
            referral=r,
            referrer=referrers.get(r.referrer_code),
            reward=getattr(r, "reward_record", None),
        )
        for r in referrals
    ]


def count_pending(company: Company) -> int:
    return Referral.objects.filter(company=company, converted=False).count()


def count_new_referrals(company: Company, hours: Optional[int] = None) -> int:
    hours = settings.NEW_ITEMS_WINDOW_HOURS if hours is None else hours
    since = timezone.now() - timedelta(hours=hours)
    return Referral.objects.filter(company=company, created_at__gte=since).count()


def count_new_clients(company: Company, hours: Optional[int] = None) -> int:
    hours = settings.NEW_ITEMS_WINDOW_HOURS if hours is None else hours
    since = timezone.now() - timedelta(hours=hours)
    return Client.objects.filter(company=company, created_at__gte=since).count()


def referral_landing(code: str) -> dict:
    """Infos publiques de la page d'arrivée d'un lien de parrainage."""
    referrer = resolve_code(code)
    return {
        "code": referrer.referral_code,
        "referrer_first_name": referrer.first_name,
        "company": referrer.company.name,
        "discount": referrer.company.referral_discount,
    }


def send_reminder(referral_id: int, *, company: Optional[Company] = None) -> ReminderResult:
    """Relance SMS d'un filleul en attente ; l'échec opérateur est journalisé, pas levé."""
    from sms.services.carrier import OutboundSms, get_carrier

    referral = _get_referral(referral_id, company)
    if referral.converted:
        raise ValidationError("Parrainage déjà converti : relance inutile.")
    if not referral.referee_phone:
        raise ValidationError("Aucun téléphone pour ce filleul.")

    body = REMINDER_TEMPLATE.format(
        referee_name=referral.referee_name, referrer_code=referral.referrer_code,
    )
    result = get_carrier().send(OutboundSms(
        to=referral.referee_phone,
        body=body,
        sender=referral.company.sms_number or None,
    ))

    if result.ok:
        log_activity(
            referral.company,
            ActivityLog.Type.REMINDER_SENT,
            f"Relance envoyée à {referral.referee_name}",
            referral_id=referral.pk,
            referee_phone=referral.referee_phone,
            provider_id=result.provider_id,
        )
        return ReminderResult(ok=True, provider_id=result.provider_id)

    log_activity(
        referral.company,
        ActivityLog.Type.REMINDER_FAILED,
        f"Échec de la relance à {referral.referee_name}",
        referral_id=referral.pk,
        error=result.error,
    )
    return ReminderResult(ok=False, provider_id=None, error=result.error)


# =========================
# Sérialisation JSON
# =========================

def serialize_referral(referral: Referral) -> dict:
    return {
        "id": referral.id,
        "referrer_code": referral.referrer_code,
        "referee_name": referral.referee_name,
        "referee_email": referral.referee_email,
        "referee_phone": referral.referee_phone,
        "converted": referral.converted,
        "converted_at": referral.converted_at.isoformat() if referral.converted_at else None,
        "created_at": referral.created_at.isoformat(),
    }


def _serialize_referrer(client: Optional[Client]) -> Optional[dict]:
    if client is None:
        return None
    return {"id": client.id, "name": client.name, "email": client.email}


def serialize_pending(item: PendingReferral) -> dict:
    data = serialize_referral(item.referral)
    data["days_since_shared"] = item.days_since_shared
    data["referrer"] = _serialize_referrer(item.referrer)
    return data


def serialize_conversion(row: ConversionRow) -> dict:
    data = serialize_referral(row.referral)
    data["referrer"] = _serialize_referrer(row.referrer)
    reward = row.reward
    data["reward"] = None if reward is None else {
        "given": reward.reward_given,
        "amount": str(reward.reward_amount) if reward.reward_amount is not None else None,
        "notes": reward.notes,
        "marked_at": reward.marked_at.isoformat(),
    }
    return data
