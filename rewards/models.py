# rewards/models.py
from django.db import models
from django.utils import timezone

from accounts.models import Company
from dashboard.models import Referral


class RewardRecord(models.Model):
    """Décision de récompense d'un parrainage converti (au plus une par parrainage)."""

    company      = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="reward_records")
    referral     = models.OneToOneField(Referral, on_delete=models.CASCADE, related_name="reward_record")
    reward_given = models.BooleanField(default=False)
    reward_amount = models.CharField(max_length=32, blank=True, null=True)
    notes        = models.TextField(blank=True, null=True)
    marked_at    = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Récompense de parrainage"
        verbose_name_plural = "Récompenses de parrainage"
        ordering = ("-marked_at", "-id")

    def __str__(self):
        state = "donnée" if self.reward_given else "retenue"
        return f"Récompense {state} • parrainage #{self.referral_id}"
