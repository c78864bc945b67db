# dashboard/views.py
from __future__ import annotations

import logging

from django.conf import settings
from django.contrib.auth.decorators import login_required
from django.http import Http404, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from accounts.models import Company
from accounts.permissions import company_for
from core.http import engine_errors, form_error_response, parse_int, read_payload
from dashboard.badges import collect_badges
from dashboard.forms import BookingEventForm, RefereeForm, RewardDecisionForm
from dashboard.services.activity import recent_activity, serialize_activity
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
    serialize_conversion,
    serialize_pending,
    serialize_referral,
)
from rewards.services.core import set_reward

logger = logging.getLogger(__name__)


# -------------------------------------------------------------
# Parrainages (personnel de l'entreprise)
# -------------------------------------------------------------

@login_required
@require_GET
@engine_errors
def pending_referrals(request):
    company = company_for(request.user)
    max_age = parse_int(request.GET.get("max_age_days"), "max_age_days",
                        default=settings.PENDING_REFERRAL_MAX_AGE_DAYS, minimum=0)
    results = [serialize_pending(p) for p in list_pending(company, max_age_days=max_age)]
    return JsonResponse({"ok": True, "results": results})


@login_required
@require_GET
@engine_errors
def referral_conversions(request):
    company = company_for(request.user)
    days = parse_int(request.GET.get("days"), "days",
                     default=settings.REFERRAL_CONVERSION_WINDOW_DAYS, minimum=0)
    results = [serialize_conversion(row) for row in list_conversions(company, days=days)]
    return JsonResponse({"ok": True, "results": results})


@login_required
@require_POST
@engine_errors
def referral_convert(request, pk: int):
    company = company_for(request.user)
    result = record_conversion(pk, BookingEvent(source="manual"), company=company)
    return JsonResponse({
        "ok": True,
        "converted_now": result.converted_now,
        "referral": serialize_referral(result.referral),
    })


@login_required
@require_POST
@engine_errors
def referral_reward(request, pk: int):
    company = company_for(request.user)
    form = RewardDecisionForm(read_payload(request))
    if not form.is_valid():
        return form_error_response(form)
    cd = form.cleaned_data
    outcome = set_reward(pk, cd["given"], cd["amount"], cd["notes"], company=company)
    record = outcome.record
    return JsonResponse({
        "ok": True,
        "changed": outcome.changed,
        "reward": {
            "referral_id": record.referral_id,
            "given": record.reward_given,
            "amount": record.reward_amount,
            "notes": record.notes,
            "marked_at": record.marked_at.isoformat(),
        },
    })


@login_required
@require_POST
@engine_errors
def referral_reminder(request, pk: int):
    company = company_for(request.user)
    result = send_reminder(pk, company=company)
    status = 200 if result.ok else 502
    return JsonResponse({"ok": result.ok, "provider_id": result.provider_id, "error": result.error}, status=status)


# -------------------------------------------------------------
# Badges & activité
# -------------------------------------------------------------

@login_required
@require_GET
def badges(request):
    company = company_for(request.user)
    return JsonResponse({"ok": True, "badges": collect_badges(company).as_dict()})


@login_required
@require_GET
@engine_errors
def activity_feed(request):
    company = company_for(request.user)
    limit = parse_int(request.GET.get("limit"), "limit", default=20, minimum=1)
    types = [t for t in request.GET.getlist("type") if t]
    entries = recent_activity(company, limit=limit, types=types or None)
    return JsonResponse({"ok": True, "results": [serialize_activity(e) for e in entries]})


# -------------------------------------------------------------
# Public : lien de parrainage
# -------------------------------------------------------------

@csrf_exempt
@require_http_methods(["GET", "POST"])
@engine_errors
def referral_link(request, code: str):
    if request.method == "GET":
        return JsonResponse({"ok": True, "referral": referral_landing(code)})

    form = RefereeForm(read_payload(request))
    if not form.is_valid():
        return form_error_response(form)
    cd = form.cleaned_data
    referral_id = register_referral(code, RefereeContact(name=cd["name"], email=cd["email"], phone=cd["phone"]))
    return JsonResponse({"ok": True, "referral_id": referral_id}, status=201)


# -------------------------------------------------------------
# Webhook de réservation (outil de prise de RDV)
# -------------------------------------------------------------

@csrf_exempt
@require_POST
@engine_errors
def booking_webhook(request, token: str):
    company = Company.objects.filter(webhook_token=token, is_active=True).first()
    if company is None:
        raise Http404("Webhook inconnu.")

    form = BookingEventForm(read_payload(request))
    if not form.is_valid():
        return form_error_response(form)
    cd = form.cleaned_data
    results = process_booking_event(company, BookingEvent(
        referee_email=cd.get("email") or None,
        referee_phone=cd.get("phone") or None,
        booking_amount=cd.get("amount"),
        source=cd.get("source") or "booking",
    ))
    return JsonResponse({
        "ok": True,
        "matched": len(results),
        "converted": [r.referral.pk for r in results if r.converted_now],
    })
