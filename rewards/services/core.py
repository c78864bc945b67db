# rewards/services/core.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from django.core.exceptions import ValidationError
from django.core.validators import RegexValidator
from django.db import transaction
from django.utils import timezone

from accounts.models import Company
from core.exceptions import NotFound
from dashboard.models import ActivityLog, Referral
from dashboard.services.activity import log_activity
from dashboard.services.transitions import (
    RewardState,
    decide_reward,
    referral_state,
    reward_state,
)

from ..models import RewardRecord

logger = logging.getLogger(__name__)

AMOUNT_MAX_LENGTH = 32

# "$25", "25", "25.50", "25,50 €"
validate_reward_amount = RegexValidator(
    r"^[$€£]?\s?\d{1,7}(?:[.,]\d{1,2})?\s?[$€£]?$",
    "Montant invalide (ex. $25 ou 25,50 €).",
)


def clean_reward_amount(amount) -> Optional[str]:
    """Montant libre mais borné : None ou vide -> None, sinon format monétaire simple."""
    if amount is None:
        return None
    amount = str(amount).strip()
    if not amount:
        return None
    if len(amount) > AMOUNT_MAX_LENGTH:
        raise ValidationError({"amount": f"Montant trop long ({AMOUNT_MAX_LENGTH} caractères max)."})
    try:
        validate_reward_amount(amount)
    except ValidationError as e:
        raise ValidationError({"amount": e.messages})
    return amount


@dataclass
class RewardOutcome:
    record: RewardRecord
    created: bool
    changed: bool


@transaction.atomic
def set_reward(referral_id: int, given: bool, amount: Optional[str] = None,
               notes: Optional[str] = None, *, company: Optional[Company] = None) -> RewardOutcome:
    """
    Enregistre la décision de récompense d'un parrainage converti (idempotent) :
      - au plus un RewardRecord par parrainage (créé au premier appel),
      - marked_at reflète toujours le dernier appel,
      - une activité n'est journalisée que si la décision change.
    """
    amount = clean_reward_amount(amount)
    qs = Referral.objects.select_for_update().select_related("company")
    if company is not None:
        qs = qs.filter(company=company)
    referral = qs.filter(pk=referral_id).first()
    if referral is None:
        raise NotFound(f"Parrainage {referral_id} introuvable.", referral_id=referral_id)

    existing = RewardRecord.objects.filter(referral=referral).first()
    current = reward_state(existing.reward_given if existing else None)
    # NotConverted levée ici pour un parrainage en attente
    decision = decide_reward(referral_state(referral.converted), current, given)

    now = timezone.now()
    record, created = RewardRecord.objects.get_or_create(
        referral=referral,
        defaults={
            "company": referral.company,
            "reward_given": given,
            "reward_amount": amount,
            "notes": notes,
            "marked_at": now,
        },
    )
    if not created:
        record.reward_given = given
        record.marked_at = now
        fields = ["reward_given", "marked_at"]
        if amount is not None:
            record.reward_amount = amount
            fields.append("reward_amount")
        if notes is not None:
            record.notes = notes
            fields.append("notes")
        record.save(update_fields=fields)

    if decision.changed:
        if decision.state is RewardState.GIVEN:
            log_type, label = ActivityLog.Type.REWARD_GIVEN, "donnée"
        else:
            log_type, label = ActivityLog.Type.REWARD_WITHHELD, "retenue"
        log_activity(
            referral.company,
            log_type,
            f"Récompense {label} pour le parrainage de {referral.referee_name}",
            referral_id=referral.pk,
            reward_amount=record.reward_amount,
            notes=record.notes,
        )
        logger.info("reward %s referral=%s company=%s", decision.state.value, referral.pk, referral.company_id)
    else:
        logger.debug("reward unchanged referral=%s (%s)", referral.pk, decision.state.value)

    return RewardOutcome(record=record, created=created, changed=decision.changed)
