# core/utils/phones.py
import re

import phonenumbers
from django.conf import settings
from phonenumbers import NumberParseException, PhoneNumberFormat

_CLEAN_RE = re.compile(r"[^\d\+]")
_ONLY_DIGITS_RE = re.compile(r"\D+")


def _default_regions():
    return (getattr(settings, "SMS_DEFAULT_REGION", "US"),)


def to_e164(phone_raw: str, regions=None) -> str:
    """
    Parse et normalise un numéro en E.164, en tolérant :
    - 00 comme préfixe international,
    - un numéro local US à 10 chiffres, ou 11 chiffres commençant par 1,
    - les formats locaux des régions données (région SMS par défaut sinon).
    """
    if not phone_raw:
        raise ValueError("Numéro requis.")

    regions = tuple(regions or _default_regions())
    raw = phone_raw.strip()
    cleaned = _CLEAN_RE.sub("", raw)

    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]

    # 1) International direct
    if cleaned.startswith("+"):
        try:
            num = phonenumbers.parse(cleaned, None)
            if phonenumbers.is_valid_number(num):
                return phonenumbers.format_number(num, PhoneNumberFormat.E164)
        except NumberParseException:
            pass

    # 2) Formats locaux par région
    for region in regions:
        try:
            num = phonenumbers.parse(cleaned or raw, region)
            if phonenumbers.is_valid_number(num):
                return phonenumbers.format_number(num, PhoneNumberFormat.E164)
        except NumberParseException:
            continue

    # 3) Tolérance NANP : 10 chiffres -> +1, 11 chiffres en 1 -> +
    digits = _ONLY_DIGITS_RE.sub("", cleaned)
    if len(digits) == 10:
        return "+1" + digits
    if len(digits) == 11 and digits.startswith("1"):
        return "+" + digits

    raise ValueError("Numéro invalide.")


def normalize_or_none(phone_raw: str | None) -> str | None:
    """to_e164 sans exception : None si vide ou invalide."""
    if not phone_raw:
        return None
    try:
        return to_e164(phone_raw)
    except ValueError:
        return None


def same_number(a: str | None, b: str | None) -> bool:
    na, nb = normalize_or_none(a), normalize_or_none(b)
    return bool(na) and na == nb
