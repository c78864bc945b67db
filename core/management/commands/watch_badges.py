# core/management/commands/watch_badges.py
import asyncio

from django.core.management.base import BaseCommand, CommandError

from accounts.models import Company
from core.sync.queries import DashboardSession


class Command(BaseCommand):
    help = "Suit les badges du tableau de bord d'une entreprise (polling) et affiche chaque changement."

    def add_arguments(self, parser):
        parser.add_argument("--company", required=True, help="Slug de l'entreprise.")
        parser.add_argument("--duration", type=float, default=0,
                            help="Durée en secondes (0 = jusqu'à interruption).")

    def handle(self, *args, **opts):
        try:
            company = Company.objects.get(slug=opts["company"], is_active=True)
        except Company.DoesNotExist:
            raise CommandError(f"Entreprise introuvable : {opts['company']}")

        try:
            asyncio.run(self._watch(company, opts["duration"]))
        except KeyboardInterrupt:
            pass
        self.stdout.write(self.style.SUCCESS(f"{company.name}: suivi terminé"))

    async def _watch(self, company, duration):
        session = DashboardSession(company)
        last = {}

        def on_refresh(key, entry):
            badges = session.badges()
            values = badges.values()
            if values != last:
                last.clear()
                last.update(values)
                line = " ".join(f"{k}={v}" for k, v in values.items())
                if badges.degraded:
                    line += f" (dégradé: {', '.join(badges.degraded)})"
                self.stdout.write(line)

        session.coordinator.add_listener(on_refresh)
        session.start()
        try:
            if duration:
                await asyncio.sleep(duration)
            else:
                await asyncio.Event().wait()
        finally:
            await session.close()
