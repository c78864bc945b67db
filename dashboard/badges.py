# dashboard/badges.py
"""
Badges de la barre latérale.

combine_badges est pur : une lecture absente ou en erreur retombe sur la
dernière valeur connue (ou 0) et n'empêche jamais l'affichage des autres.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Optional, Union

from django.core.cache import cache

from accounts.models import Company

logger = logging.getLogger(__name__)

BADGE_NAMES = ("sms", "clients", "referrals", "pending_referrals")


@dataclass(frozen=True)
class Badges:
    sms: int = 0
    clients: int = 0
    referrals: int = 0
    pending_referrals: int = 0
    degraded: tuple = field(default=())

    def values(self) -> dict:
        return {name: getattr(self, name) for name in BADGE_NAMES}

    def as_dict(self) -> dict:
        data = self.values()
        data["degraded"] = list(self.degraded)
        return data


def _valid(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def combine_badges(readings: Mapping[str, object],
                   previous: Optional[Union[Badges, Mapping[str, int]]] = None,
                   stale: Iterable[str] = ()) -> Badges:
    """
    Lectures (entier, None ou exception) -> Badges, repli sur `previous` puis 0.
    Une lecture valide mais périmée (`stale`) est affichée et signalée dégradée.
    """
    if isinstance(previous, Badges):
        previous = previous.values()
    previous = previous or {}
    stale = set(stale)

    values, degraded = {}, []
    for name in BADGE_NAMES:
        reading = readings.get(name)
        if _valid(reading):
            values[name] = reading
            if name in stale:
                degraded.append(name)
            continue
        fallback = previous.get(name)
        values[name] = fallback if _valid(fallback) else 0
        degraded.append(name)
    return Badges(degraded=tuple(degraded), **values)


# -------------------------------------------------------------
# Sources serveur
# -------------------------------------------------------------

def badge_sources(company: Company) -> dict[str, Callable[[], int]]:
    from dashboard.services.attribution import count_new_clients, count_new_referrals, count_pending
    from sms.services.conversations import unread_count

    return {
        "sms": lambda: unread_count(company),
        "clients": lambda: count_new_clients(company),
        "referrals": lambda: count_new_referrals(company),
        "pending_referrals": lambda: count_pending(company),
    }


def _cache_key(company: Company) -> str:
    return f"badges:last:{company.pk}"


def collect_badges(company: Company, sources: Optional[Mapping[str, Callable[[], int]]] = None) -> Badges:
    """Interroge chaque source indépendamment ; mémorise les dernières valeurs connues."""
    sources = sources if sources is not None else badge_sources(company)
    readings = {}
    for name, source in sources.items():
        try:
            readings[name] = source()
        except Exception as exc:  # une source en panne ne bloque pas les autres
            logger.warning("badge source %s failed for company=%s: %s", name, company.pk, exc)
            readings[name] = exc

    badges = combine_badges(readings, previous=cache.get(_cache_key(company)))
    cache.set(_cache_key(company), badges.values(), None)
    return badges
