# sms/views.py
from __future__ import annotations

import logging

from django.conf import settings
from django.contrib.auth.decorators import login_required
from django.http import HttpResponse, HttpResponseForbidden, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST
from twilio.request_validator import RequestValidator
from twilio.twiml.messaging_response import MessagingResponse

from accounts.permissions import company_for
from core.exceptions import NotFound
from core.http import engine_errors, form_error_response, parse_int, read_payload
from sms.forms import InboundWebhookForm, ReplyForm, StatusWebhookForm
from sms.services.conversations import (
    PAGE_DEFAULT,
    InboundSms,
    get_conversation,
    ingest_inbound,
    list_conversations,
    mark_read as mark_messages_read,
    retry_message,
    send_reply,
    serialize_conversation,
    serialize_message,
    serialize_summary,
    unread_count as count_unread,
    record_early_status,
    update_delivery_status,
)

logger = logging.getLogger(__name__)


# -------------------------------------------------------------
# Conversations (personnel de l'entreprise)
# -------------------------------------------------------------

@login_required
@require_GET
@engine_errors
def conversations(request):
    company = company_for(request.user)
    limit = parse_int(request.GET.get("limit"), "limit", default=PAGE_DEFAULT)
    offset = parse_int(request.GET.get("offset"), "offset", default=0, minimum=0)
    page = list_conversations(company, limit=limit, offset=offset)
    return JsonResponse({
        "ok": True,
        "total": page.total,
        "limit": page.limit,
        "offset": page.offset,
        "results": [serialize_summary(item) for item in page.items],
    })


@login_required
@require_GET
@engine_errors
def conversation_detail(request, client_id: int):
    company = company_for(request.user)
    conversation = get_conversation(client_id, company=company)
    return JsonResponse({"ok": True, "conversation": serialize_conversation(conversation)})


@login_required
@require_POST
@engine_errors
def mark_read(request):
    company = company_for(request.user)
    ids = read_payload(request).get("ids") or []
    if isinstance(ids, str):
        ids = [i for i in ids.split(",") if i.strip()]
    flipped = mark_messages_read(ids, company=company)
    return JsonResponse({"ok": True, "marked": flipped})


@login_required
@require_POST
@engine_errors
def reply(request):
    company = company_for(request.user)
    form = ReplyForm(read_payload(request))
    if not form.is_valid():
        return form_error_response(form)
    message = send_reply(form.cleaned_data["client_id"], form.cleaned_data["message"], company=company)
    return JsonResponse({"ok": message.status != "failed", "message": serialize_message(message)})


@login_required
@require_POST
@engine_errors
def retry(request, pk: int):
    company = company_for(request.user)
    message = retry_message(pk, company=company)
    return JsonResponse({"ok": message.status != "failed", "message": serialize_message(message)})


@login_required
@require_GET
def unread_count(request):
    company = company_for(request.user)
    return JsonResponse({"ok": True, "count": count_unread(company)})


# -------------------------------------------------------------
# Webhooks opérateur (Twilio)
# -------------------------------------------------------------

def _twilio_signature_ok(request) -> bool:
    cfg = settings.TWILIO
    if not cfg.get("VALIDATE_WEBHOOKS"):
        return True
    validator = RequestValidator(cfg.get("AUTH_TOKEN", ""))
    return validator.validate(
        request.build_absolute_uri(),
        request.POST.dict(),
        request.headers.get("X-Twilio-Signature", ""),
    )


def _twiml_ok() -> HttpResponse:
    return HttpResponse(str(MessagingResponse()), content_type="text/xml")


@csrf_exempt
@require_POST
def inbound_webhook(request):
    if not _twilio_signature_ok(request):
        logger.warning("inbound webhook: invalid Twilio signature")
        return HttpResponseForbidden("Signature invalide.")
    form = InboundWebhookForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)
    cd = form.cleaned_data
    ingest_inbound(InboundSms(
        provider_message_id=cd["MessageSid"],
        from_number=cd["From"],
        to_number=cd["To"],
        body=cd.get("Body") or "",
    ))
    # Toujours 200 : l'opérateur ne doit pas rejouer un message non rattaché
    return _twiml_ok()


@csrf_exempt
@require_POST
def status_webhook(request):
    if not _twilio_signature_ok(request):
        logger.warning("status webhook: invalid Twilio signature")
        return HttpResponseForbidden("Signature invalide.")
    form = StatusWebhookForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)
    cd = form.cleaned_data
    error = " ".join(x for x in (cd.get("ErrorCode"), cd.get("ErrorMessage")) if x) or None
    try:
        update_delivery_status(cd["MessageSid"], cd["MessageStatus"], error)
    except NotFound:
        # Callback plus rapide que la réponse d'envoi : rejoué par send_reply
        record_early_status(cd["MessageSid"], cd["MessageStatus"], error)
    return _twiml_ok()
