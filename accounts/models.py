# accounts/models.py
import secrets

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models.functions import Lower
from django.utils.text import slugify

from accounts.managers import UserManager


def _new_webhook_token() -> str:
    return secrets.token_urlsafe(24)


class Company(models.Model):
    """Entreprise cliente : périmètre de tous les parrainages et SMS."""

    name = models.CharField(max_length=150, unique=True)
    # blank=True : le slug s'auto-remplit à l'enregistrement
    slug = models.SlugField(max_length=160, unique=True, blank=True)
    is_active = models.BooleanField(default=True)

    # Numéro SMS de l'entreprise (E.164), sert au routage des SMS entrants
    sms_number = models.CharField(max_length=32, blank=True, db_index=True)
    # Jeton d'URL du webhook de réservation
    webhook_token = models.CharField(max_length=64, unique=True, default=_new_webhook_token)
    referral_discount = models.CharField(max_length=32, default="$25")

    def _build_unique_slug(self):
        base = slugify(self.name or "")
        slug = base or "entreprise"
        i = 1
        while Company.objects.filter(slug=slug).exclude(pk=self.pk).exists():
            i += 1
            slug = f"{base}-{i}"
        return slug

    def rotate_webhook_token(self) -> str:
        self.webhook_token = _new_webhook_token()
        self.save(update_fields=["webhook_token"])
        return self.webhook_token

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = self._build_unique_slug()
        super().save(*args, **kwargs)

    class Meta:
        verbose_name = "Entreprise"
        verbose_name_plural = "Entreprises"

    def __str__(self):
        return self.name


class User(AbstractUser):
    class Profile(models.TextChoices):
        SUPERADMIN = "superadmin", "Superadmin (plateforme)"
        ADMIN = "admin", "Admin d’entreprise"
        OPERATEUR = "operateur", "Opérateur"

    profile = models.CharField(
        max_length=20,
        choices=Profile.choices,
        default=Profile.OPERATEUR,
    )

    # Pas d'entreprise pour un superadmin
    company = models.ForeignKey(
        Company, on_delete=models.SET_NULL, null=True, blank=True, related_name="users"
    )
    objects = UserManager()

    def clean(self):
        from django.core.exceptions import ValidationError
        if self.profile == self.Profile.SUPERADMIN and self.company:
            raise ValidationError("Un superadmin ne doit pas être rattaché à une entreprise.")

    def is_superadmin(self) -> bool:
        return self.is_superuser or self.profile == self.Profile.SUPERADMIN

    def is_admin_entreprise(self) -> bool:
        return self.profile == self.Profile.ADMIN

    def is_operateur(self) -> bool:
        return self.profile == self.Profile.OPERATEUR

    def __str__(self):
        return f"{self.username} • {self.get_profile_display()}"

    class Meta:
        constraints = [
            models.UniqueConstraint(
                Lower("username"),
                name="unique_username_ci",
            ),
        ]
