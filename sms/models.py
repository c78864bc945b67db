# sms/models.py
from django.db import models
from django.utils import timezone

from accounts.models import Company
from dashboard.models import Client


class SmsMessage(models.Model):
    """
    Message SMS brut. Immuable, sauf :
      - is_read (entrant uniquement, False -> True),
      - status (sortant : queued -> sent -> delivered | failed).
    """

    class Direction(models.TextChoices):
        INBOUND = "inbound", "Entrant"
        OUTBOUND = "outbound", "Sortant"

    class Status(models.TextChoices):
        RECEIVED = "received", "Reçu"
        QUEUED = "queued", "En file"
        SENT = "sent", "Envoyé"
        DELIVERED = "delivered", "Distribué"
        FAILED = "failed", "Échec"

    company      = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="sms_messages")
    client       = models.ForeignKey(Client, on_delete=models.CASCADE, related_name="sms_messages")
    direction    = models.CharField(max_length=10, choices=Direction.choices)
    from_number  = models.CharField(max_length=32)
    to_number    = models.CharField(max_length=32)
    body         = models.TextField(blank=True)
    message_type = models.CharField(max_length=32, default="reply")
    # Identifiant opérateur (Twilio MessageSid...) : dédoublonnage des webhooks
    provider_message_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    status       = models.CharField(max_length=12, choices=Status.choices)
    error_message = models.CharField(max_length=500, blank=True)
    timestamp    = models.DateTimeField(default=timezone.now, db_index=True)
    is_read      = models.BooleanField(default=False)

    class Meta:
        ordering = ("timestamp", "id")
        indexes = [
            models.Index(fields=["company", "client", "timestamp"], name="sms_conv_idx"),
            models.Index(fields=["company", "direction", "is_read"], name="sms_unread_idx"),
        ]

    @property
    def is_inbound(self) -> bool:
        return self.direction == self.Direction.INBOUND

    def __str__(self):
        arrow = "←" if self.is_inbound else "→"
        return f"{arrow} {self.client_id} [{self.status}] {self.body[:30]}"


class EarlyDeliveryStatus(models.Model):
    """
    Statut opérateur reçu avant que l'identifiant opérateur soit rattaché
    au message (callback plus rapide que la réponse d'envoi). Rejoué puis
    supprimé dès que le message porte cet identifiant.
    """

    provider_message_id = models.CharField(max_length=64, db_index=True)
    carrier_status = models.CharField(max_length=32)
    error = models.CharField(max_length=500, blank=True)
    received_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ("received_at", "id")

    def __str__(self):
        return f"{self.provider_message_id} [{self.carrier_status}]"
