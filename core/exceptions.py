# core/exceptions.py
"""
Erreurs métier du moteur parrainage / SMS.

La validation d'entrée reste la ValidationError de Django
(formulaires et services), les vues la traduisent en 400.
"""
from __future__ import annotations

from django.core.exceptions import ValidationError

__all__ = [
    "EngineError",
    "NotFound",
    "UnknownReferralCode",
    "DuplicateReferral",
    "AlreadyConverted",
    "NotConverted",
    "UpstreamDeliveryFailure",
    "ValidationError",
    "http_status_for",
]


class EngineError(Exception):
    code = "error"

    def __init__(self, message: str = "", **context):
        super().__init__(message or self.__class__.__name__)
        self.context = context


class NotFound(EngineError):
    code = "not_found"


class UnknownReferralCode(NotFound):
    code = "unknown_referral_code"


class DuplicateReferral(EngineError):
    code = "duplicate_referral"


class AlreadyConverted(EngineError):
    # Absorbée par record_conversion, ne remonte jamais jusqu'à une vue
    code = "already_converted"


class NotConverted(EngineError):
    code = "not_converted"


class UpstreamDeliveryFailure(EngineError):
    """Échec opérateur SMS : enregistré sur le message, pas propagé à l'appelant."""
    code = "delivery_failed"


_STATUS = (
    (NotFound, 404),
    (DuplicateReferral, 409),
    (NotConverted, 409),
    (AlreadyConverted, 409),
    (UpstreamDeliveryFailure, 502),
)


def http_status_for(exc: Exception) -> int:
    if isinstance(exc, ValidationError):
        return 400
    for klass, status in _STATUS:
        if isinstance(exc, klass):
            return status
    return 500
