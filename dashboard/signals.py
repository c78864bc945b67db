# dashboard/signals.py
from django.core.exceptions import ValidationError
from django.db.models.signals import pre_save
from django.dispatch import receiver

from core.utils.phones import normalize_or_none

from .models import Client


@receiver(pre_save, sender=Client)
def client_referral_code(sender, instance: Client, **kwargs):
    """Émet le code à la création, refuse toute modification ensuite."""
    if instance.pk:
        previous = (
            Client.objects.filter(pk=instance.pk)
            .values_list("referral_code", flat=True)
            .first()
        )
        if previous and instance.referral_code != previous:
            raise ValidationError("Le code de parrainage d'un client est immuable.")
    if not instance.referral_code:
        instance.ensure_referral_code()


@receiver(pre_save, sender=Client)
def client_phone_e164(sender, instance: Client, **kwargs):
    # Numéro stocké en E.164 quand il est reconnu (routage des SMS entrants)
    if instance.phone:
        instance.phone = normalize_or_none(instance.phone) or instance.phone.strip()
