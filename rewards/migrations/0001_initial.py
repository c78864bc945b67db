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
            name="RewardRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("reward_given", models.BooleanField(default=False)),
                ("reward_amount", models.CharField(blank=True, max_length=32, null=True)),
                ("notes", models.TextField(blank=True, null=True)),
                ("marked_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="reward_records", to="accounts.company")),
                ("referral", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="reward_record", to="dashboard.referral")),
            ],
            options={
                "verbose_name": "Récompense de parrainage",
                "verbose_name_plural": "Récompenses de parrainage",
                "ordering": ("-marked_at", "-id"),
            },
        ),
    ]
