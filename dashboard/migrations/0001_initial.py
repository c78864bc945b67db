import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("accounts", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Client",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("email", models.EmailField(blank=True, max_length=254, null=True)),
                ("phone", models.CharField(blank=True, max_length=32)),
                ("referral_code", models.CharField(blank=True, max_length=32, unique=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="clients", to="accounts.company")),
            ],
            options={
                "ordering": ("-created_at", "-id"),
            },
        ),
        migrations.CreateModel(
            name="Referral",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("referrer_code", models.CharField(db_index=True, max_length=32)),
                ("referee_name", models.CharField(max_length=200)),
                ("referee_email", models.EmailField(max_length=254)),
                ("referee_phone", models.CharField(blank=True, max_length=32)),
                ("converted", models.BooleanField(default=False)),
                ("converted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="referrals", to="accounts.company")),
            ],
            options={
                "ordering": ("-created_at", "-id"),
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("converted", False)),
                        fields=("company", "referrer_code", "referee_email"),
                        name="uniq_pending_referral_per_referee",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("converted", False), ("converted_at__isnull", True)),
                            models.Q(("converted", True), ("converted_at__isnull", False)),
                            _connector="OR",
                        ),
                        name="referral_converted_at_consistent",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ActivityLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("type", models.CharField(choices=[
                    ("referral_created", "Parrainage créé"),
                    ("referral_converted", "Parrainage converti"),
                    ("referral_reward_given", "Récompense donnée"),
                    ("referral_reward_withheld", "Récompense retenue"),
                    ("referral_reminder_sent", "Relance envoyée"),
                    ("referral_reminder_failed", "Relance échouée"),
                    ("sms_received", "SMS reçu"),
                    ("sms_sent", "SMS envoyé"),
                    ("sms_failed", "SMS en échec"),
                    ("sms_opt_out", "Désinscription SMS"),
                    ("sms_unmatched", "SMS d'un expéditeur inconnu"),
                ], db_index=True, max_length=40)),
                ("description", models.CharField(max_length=500)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("timestamp", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="activities", to="accounts.company")),
            ],
            options={
                "ordering": ("-timestamp", "-id"),
            },
        ),
    ]
