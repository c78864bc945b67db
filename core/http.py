# core/http.py
"""Petits utilitaires des vues JSON : lecture du corps, erreurs métier -> statut HTTP."""
from __future__ import annotations

import functools
import json
import logging

from django.core.exceptions import ValidationError
from django.http import JsonResponse

from core.exceptions import EngineError, http_status_for

logger = logging.getLogger(__name__)


def read_payload(request) -> dict:
    """Corps JSON ou formulaire, selon le Content-Type."""
    if request.content_type == "application/json":
        try:
            data = json.loads(request.body or b"{}")
        except ValueError:
            raise ValidationError("JSON invalide.")
        if not isinstance(data, dict):
            raise ValidationError("Objet JSON attendu.")
        return data
    return request.POST.dict()


def error_response(exc: Exception) -> JsonResponse:
    status = http_status_for(exc)
    if isinstance(exc, ValidationError):
        detail = exc.message_dict if hasattr(exc, "error_dict") else exc.messages
        return JsonResponse({"ok": False, "error": "validation", "detail": detail}, status=status)
    code = getattr(exc, "code", "error")
    return JsonResponse({"ok": False, "error": code, "detail": str(exc)}, status=status)


def form_error_response(form) -> JsonResponse:
    return JsonResponse({"ok": False, "error": "validation", "detail": form.errors.get_json_data()}, status=400)


def engine_errors(view):
    """Traduit ValidationError / erreurs métier en réponse JSON."""
    @functools.wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except (ValidationError, EngineError) as exc:
            logger.info("%s -> %s: %s", request.path, type(exc).__name__, exc)
            return error_response(exc)
    return wrapper


def parse_int(value, name: str, default=None, minimum=None):
    if value in (None, ""):
        return default
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError({name: "Entier attendu."})
    if minimum is not None and value < minimum:
        raise ValidationError({name: f"Doit être >= {minimum}."})
    return value
