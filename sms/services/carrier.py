# sms/services/carrier.py
"""
Passerelles opérateur SMS.

Un envoi ne lève jamais : l'échec est rendu dans CarrierResult
et enregistré par l'appelant sur le message.
"""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests
from django.conf import settings
from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

from core.utils.phones import normalize_or_none

logger = logging.getLogger(__name__)

__all__ = [
    "OutboundSms",
    "CarrierResult",
    "DryRunCarrier",
    "TwilioCarrier",
    "SmsModeCarrier",
    "get_carrier",
    "map_carrier_status",
]

# =========================
# Modèles de données
# =========================

@dataclass
class OutboundSms:
    to: str
    body: str
    sender: Optional[str] = None
    status_callback: Optional[str] = None


@dataclass
class CarrierResult:
    ok: bool
    provider_id: Optional[str]
    status: str
    error: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


# =========================
# Statuts opérateur -> statut message
# =========================

_STATUS_MAP = {
    "queued": "queued",
    "accepted": "queued",
    "scheduled": "queued",
    "sending": "queued",
    "sent": "sent",
    "delivered": "delivered",
    "read": "delivered",
    "received": "delivered",
    "undelivered": "failed",
    "failed": "failed",
    "canceled": "failed",
}


def map_carrier_status(raw_status: str) -> Optional[str]:
    """Statut Twilio/smsmode -> statut SmsMessage (None si inconnu)."""
    return _STATUS_MAP.get((raw_status or "").strip().lower())


# =========================
# Passerelles
# =========================

class DryRunCarrier:
    name = "dry_run"

    def send(self, sms: OutboundSms) -> CarrierResult:
        provider_id = f"DRY{uuid.uuid4().hex[:29].upper()}"
        logger.info("[SMS DRY-RUN] to=%s sender=%s id=%s", sms.to, sms.sender or "", provider_id)
        return CarrierResult(ok=True, provider_id=provider_id, status="sent", raw={"dry_run": True})


class TwilioCarrier:
    name = "twilio"

    def __init__(self, account_sid: str, auth_token: str, from_number: str = ""):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number

    def send(self, sms: OutboundSms) -> CarrierResult:
        sender = sms.sender or self.from_number
        if not (self.account_sid and self.auth_token and sender):
            return CarrierResult(ok=False, provider_id=None, status="failed",
                                 error="Configuration Twilio manquante (env: TWILIO_*).")
        if not sms.to:
            return CarrierResult(ok=False, provider_id=None, status="failed",
                                 error="Numéro du destinataire manquant.")

        kwargs: Dict[str, Any] = {"to": sms.to, "from_": sender, "body": sms.body}
        if sms.status_callback:
            kwargs["status_callback"] = sms.status_callback
        try:
            message = TwilioClient(self.account_sid, self.auth_token).messages.create(**kwargs)
        except (TwilioException, requests.RequestException) as e:
            logger.error("Twilio send failed to=%s: %s", sms.to, e)
            return CarrierResult(ok=False, provider_id=None, status="failed", error=str(e))

        logger.info("Twilio sent to=%s sid=%s status=%s", sms.to, message.sid, message.status)
        return CarrierResult(ok=True, provider_id=message.sid, status=map_carrier_status(message.status) or "sent")


class SmsModeCarrier:
    """
    Envoi via smsmode.
    Auth: header 'X-Api-Key: <API_KEY>'
    Endpoint: <BASE_URL>/sms/v1/messages
    """
    name = "smsmode"

    def __init__(self, api_key: str, base_url: str, sender: str = "", timeout: int = 10):
        self.api_key = api_key
        self.base_url = base_url
        self.sender = sender
        self.timeout = timeout

    def url(self) -> str:
        # Pas de double 'sms/v1'
        base = self.base_url.rstrip("/")
        if base.endswith("/sms/v1"):
            return f"{base}/messages"
        return f"{base}/sms/v1/messages"

    def send(self, sms: OutboundSms) -> CarrierResult:
        # smsmode attend des CHIFFRES (sans '+')
        to_digits = (normalize_or_none(sms.to) or "").lstrip("+") or re.sub(r"\D", "", sms.to or "")
        if not to_digits:
            logger.error("SMSMODE: numéro invalide après normalisation (%s)", sms.to)
            return CarrierResult(ok=False, provider_id=None, status="failed", error="INVALID_NUMBER")

        data: Dict[str, Any] = {"recipient": {"to": to_digits}, "body": {"text": sms.body}}
        sender = sms.sender or self.sender
        if sender:
            data["from"] = sender
        headers = {
            "X-Api-Key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            resp = requests.post(self.url(), headers=headers, json=data, timeout=self.timeout)
        except requests.RequestException as e:
            logger.exception("SMSMODE exception")
            return CarrierResult(ok=False, provider_id=None, status="failed", error=str(e))

        try:
            raw = resp.json()
        except ValueError:
            raw = {"text": resp.text}
        if not isinstance(raw, dict):
            raw = {"data": raw}

        ok = 200 <= resp.status_code < 300
        # messageId ou messageIds[]
        if isinstance(raw.get("messageIds"), list) and raw["messageIds"]:
            provider_id = raw["messageIds"][0]
        else:
            provider_id = raw.get("messageId")

        if not ok:
            logger.error("SMSMODE error: http=%s raw=%s", resp.status_code, raw)
            return CarrierResult(ok=False, provider_id=None, status="failed",
                                 error=f"HTTP_{resp.status_code}", raw=raw)
        return CarrierResult(ok=True, provider_id=provider_id, status="sent", raw=raw)


def get_carrier():
    backend = (getattr(settings, "SMS_CARRIER", "dry_run") or "dry_run").lower()
    if backend == "twilio":
        cfg = settings.TWILIO
        return TwilioCarrier(cfg["ACCOUNT_SID"], cfg["AUTH_TOKEN"], cfg["FROM_NUMBER"])
    if backend == "smsmode":
        cfg = settings.SMSMODE
        if cfg.get("DRY_RUN"):
            return DryRunCarrier()
        return SmsModeCarrier(cfg["API_KEY"], cfg["BASE_URL"], cfg.get("SENDER", ""), int(cfg.get("TIMEOUT", 10)))
    return DryRunCarrier()
