# dashboard/models.py
import secrets
import string

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from accounts.models import Company

REFERRAL_CODE_PREFIX = "REF-"
_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_referral_code(length: int = 8) -> str:
    return REFERRAL_CODE_PREFIX + "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


class Client(models.Model):
    company      = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="clients")
    name         = models.CharField(max_length=200)
    email        = models.EmailField(blank=True, null=True)
    phone        = models.CharField(max_length=32, blank=True)
    # Émis une fois, jamais modifié ensuite (cf. signals)
    referral_code = models.CharField(max_length=32, unique=True, blank=True)
    is_active    = models.BooleanField(default=True)
    created_at   = models.DateTimeField(default=timezone.now, db_index=True)
    # Remerciement post-réservation envoyé (une seule fois)
    thank_you_sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ("-created_at", "-id")

    def ensure_referral_code(self):
        while not self.referral_code:
            code = generate_referral_code()
            if not Client.objects.filter(referral_code=code).exists():
                self.referral_code = code

    @property
    def first_name(self) -> str:
        return (self.name or "").split(" ")[0]

    def __str__(self):
        return self.name or self.email or f"Client #{self.pk}"


class Referral(models.Model):
    company        = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="referrals")
    referrer_code  = models.CharField(max_length=32, db_index=True)
    referee_name   = models.CharField(max_length=200)
    referee_email  = models.EmailField()
    referee_phone  = models.CharField(max_length=32, blank=True)
    converted      = models.BooleanField(default=False)
    converted_at   = models.DateTimeField(null=True, blank=True)
    created_at     = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ("-created_at", "-id")
        constraints = [
            # Un seul parrainage EN ATTENTE par (code, email filleul)
            models.UniqueConstraint(
                fields=["company", "referrer_code", "referee_email"],
                condition=Q(converted=False),
                name="uniq_pending_referral_per_referee",
            ),
            models.CheckConstraint(
                condition=Q(converted=False, converted_at__isnull=True) | Q(converted=True, converted_at__isnull=False),
                name="referral_converted_at_consistent",
            ),
        ]

    def clean(self):
        if self.converted and not self.converted_at:
            raise ValidationError("converted_at requis pour un parrainage converti.")

    def __str__(self):
        state = "converti" if self.converted else "en attente"
        return f"{self.referrer_code} → {self.referee_name} ({state})"


class ActivityLog(models.Model):
    """Journal d'activité, en ajout seul."""

    class Type(models.TextChoices):
        REFERRAL_CREATED = "referral_created", "Parrainage créé"
        REFERRAL_CONVERTED = "referral_converted", "Parrainage converti"
        REWARD_GIVEN = "referral_reward_given", "Récompense donnée"
        REWARD_WITHHELD = "referral_reward_withheld", "Récompense retenue"
        REMINDER_SENT = "referral_reminder_sent", "Relance envoyée"
        REMINDER_FAILED = "referral_reminder_failed", "Relance échouée"
        REWARD_NOTIFIED = "referral_reward_notified", "Parrain et filleul prévenus"
        THANK_YOU_SENT = "client_thank_you_sent", "Remerciement envoyé"
        SMS_RECEIVED = "sms_received", "SMS reçu"
        SMS_SENT = "sms_sent", "SMS envoyé"
        SMS_FAILED = "sms_failed", "SMS en échec"
        SMS_OPT_OUT = "sms_opt_out", "Désinscription SMS"
        SMS_UNMATCHED = "sms_unmatched", "SMS d'un expéditeur inconnu"

    company     = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="activities")
    type        = models.CharField(max_length=40, choices=Type.choices, db_index=True)
    description = models.CharField(max_length=500)
    metadata    = models.JSONField(default=dict, blank=True)
    timestamp   = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ("-timestamp", "-id")

    def save(self, *args, **kwargs):
        if self.pk and not kwargs.get("force_insert"):
            raise ValidationError("Le journal d'activité est en ajout seul.")
        super().save(*args, **kwargs)

    def __str__(self):
        return f"[{self.type}] {self.description}"
