import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("accounts", "0001_initial"),
        ("dashboard", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="SmsMessage",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("direction", models.CharField(choices=[("inbound", "Entrant"), ("outbound", "Sortant")], max_length=10)),
                ("from_number", models.CharField(max_length=32)),
                ("to_number", models.CharField(max_length=32)),
                ("body", models.TextField(blank=True)),
                ("message_type", models.CharField(default="reply", max_length=32)),
                ("provider_message_id", models.CharField(blank=True, max_length=64, null=True, unique=True)),
                ("status", models.CharField(choices=[("received", "Reçu"), ("queued", "En file"), ("sent", "Envoyé"), ("delivered", "Distribué"), ("failed", "Échec")], max_length=12)),
                ("error_message", models.CharField(blank=True, max_length=500)),
                ("timestamp", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("is_read", models.BooleanField(default=False)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="sms_messages", to="accounts.company")),
                ("client", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="sms_messages", to="dashboard.client")),
            ],
            options={
                "ordering": ("timestamp", "id"),
                "indexes": [
                    models.Index(fields=["company", "client", "timestamp"], name="sms_conv_idx"),
                    models.Index(fields=["company", "direction", "is_read"], name="sms_unread_idx"),
                ],
            },
        ),
    ]
