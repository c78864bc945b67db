from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("dashboard", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="client",
            name="thank_you_sent_at",
            field=models.DateTimeField(blank=True, null=True),
        ),
        migrations.AlterField(
            model_name="activitylog",
            name="type",
            field=models.CharField(choices=[
                ("referral_created", "Parrainage créé"),
                ("referral_converted", "Parrainage converti"),
                ("referral_reward_given", "Récompense donnée"),
                ("referral_reward_withheld", "Récompense retenue"),
                ("referral_reminder_sent", "Relance envoyée"),
                ("referral_reminder_failed", "Relance échouée"),
                ("referral_reward_notified", "Parrain et filleul prévenus"),
                ("client_thank_you_sent", "Remerciement envoyé"),
                ("sms_received", "SMS reçu"),
                ("sms_sent", "SMS envoyé"),
                ("sms_failed", "SMS en échec"),
                ("sms_opt_out", "Désinscription SMS"),
                ("sms_unmatched", "SMS d'un expéditeur inconnu"),
            ], db_index=True, max_length=40),
        ),
    ]
