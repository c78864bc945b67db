# core/sync/queries.py
"""
Clés de requête, intervalles par défaut, effets des mutations,
et la session tableau de bord qui relie le tout au coordinateur.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

from asgiref.sync import sync_to_async
from django.conf import settings

from accounts.models import Company
from core.sync.coordinator import Fetcher, PollingCoordinator, QueryKey, Subscription
from dashboard.badges import BADGE_NAMES, Badges, combine_badges

logger = logging.getLogger(__name__)

# -------------------------------------------------------------
# Clés
# -------------------------------------------------------------
SMS_UNREAD_COUNT = ("sms", "unread-count")
SMS_CONVERSATIONS = ("sms", "conversations")
CLIENTS_NEW = ("clients", "new")
REFERRALS_NEW = ("referrals", "new")
REFERRALS_PENDING_COUNT = ("referrals", "pending-count")
REFERRALS_PENDING = ("referrals", "pending")
REFERRALS_CONVERSIONS = ("referrals", "conversions")
ACTIVITY_FEED = ("activities", "feed")


def sms_conversation(client_id: int) -> QueryKey:
    return ("sms", "conversation", client_id)


BADGE_KEYS = {
    "sms": SMS_UNREAD_COUNT,
    "clients": CLIENTS_NEW,
    "referrals": REFERRALS_NEW,
    "pending_referrals": REFERRALS_PENDING_COUNT,
}

# Préfixes invalidés par chaque écriture
MUTATION_EFFECTS: dict[str, tuple] = {
    "mark-read": (("sms",),),
    "send-reply": (SMS_CONVERSATIONS, ("sms", "conversation"), ("activities",)),
    "retry-message": (SMS_CONVERSATIONS, ("sms", "conversation"), ("activities",)),
    "register-referral": (("referrals",), ("activities",)),
    "record-conversion": (("referrals",), ("activities",)),
    "set-reward": (REFERRALS_CONVERSIONS, ("activities",)),
    "send-reminder": (("activities",),),
}


def interval_ms(key: QueryKey) -> int:
    """Intervalle de polling configuré pour une clé (settings.POLLING_INTERVALS_MS)."""
    intervals = settings.POLLING_INTERVALS_MS
    name = ".".join(str(part) for part in key[:2])
    return int(intervals.get(name, intervals["default"]))


# -------------------------------------------------------------
# Source locale : résout une clé sur les services
# -------------------------------------------------------------

class LocalQuerySource:
    """Fetcher du coordinateur adossé directement aux services (même process)."""

    def __init__(self, company: Company):
        self.company = company

    async def __call__(self, key: QueryKey) -> Any:
        resolver = self._resolvers().get(tuple(key[:2]))
        if resolver is None:
            raise KeyError(f"Clé de requête inconnue : {key!r}")
        return await sync_to_async(resolver)(*key[2:])

    def _resolvers(self):
        from dashboard.services import attribution
        from dashboard.services.activity import recent_activity, serialize_activity
        from sms.services import conversations

        company = self.company
        return {
            SMS_UNREAD_COUNT: lambda: conversations.unread_count(company),
            SMS_CONVERSATIONS: lambda: [
                conversations.serialize_summary(item)
                for item in conversations.list_conversations(company).items
            ],
            ("sms", "conversation"): lambda client_id: conversations.serialize_conversation(
                conversations.get_conversation(client_id, company=company)
            ),
            CLIENTS_NEW: lambda: attribution.count_new_clients(company),
            REFERRALS_NEW: lambda: attribution.count_new_referrals(company),
            REFERRALS_PENDING_COUNT: lambda: attribution.count_pending(company),
            REFERRALS_PENDING: lambda: [
                attribution.serialize_pending(p) for p in attribution.list_pending(company)
            ],
            REFERRALS_CONVERSIONS: lambda: [
                attribution.serialize_conversion(row) for row in attribution.list_conversions(company)
            ],
            ACTIVITY_FEED: lambda: [serialize_activity(e) for e in recent_activity(company)],
        }


# -------------------------------------------------------------
# Session tableau de bord
# -------------------------------------------------------------

def _decrement(by: int = 1):
    return lambda value: max(0, int(value) - by)


class DashboardSession:
    def __init__(self, company: Company, *, fetch: Optional[Fetcher] = None,
                 intervals: Optional[Mapping[QueryKey, int]] = None):
        self.company = company
        self.coordinator = PollingCoordinator(fetch or LocalQuerySource(company))
        self._intervals = dict(intervals or {})
        self._subscriptions: list[Subscription] = []
        self._last_badges: Optional[Badges] = None

    def interval_for(self, key: QueryKey) -> int:
        return self._intervals.get(tuple(key)) or interval_ms(key)

    def watch(self, keys: Iterable[QueryKey]) -> list[Subscription]:
        subs = [self.coordinator.subscribe(key, self.interval_for(key)) for key in keys]
        self._subscriptions.extend(subs)
        return subs

    def start(self) -> list[Subscription]:
        return self.watch(BADGE_KEYS.values())

    async def close(self) -> None:
        await self.coordinator.close()
        self._subscriptions.clear()

    def badges(self) -> Badges:
        readings, stale = {}, []
        for name in BADGE_NAMES:
            entry = self.coordinator.entry(BADGE_KEYS[name])
            if entry is None:
                readings[name] = None
            elif entry.has_data:
                readings[name] = entry.data
                # Valeur invalidée ou dernière relecture en échec
                if entry.stale or entry.error is not None:
                    stale.append(name)
            else:
                readings[name] = entry.error
        self._last_badges = combine_badges(readings, previous=self._last_badges, stale=stale)
        return self._last_badges

    # ---------------------------------------------------------
    # Écritures
    # ---------------------------------------------------------
    async def _mutate(self, effect: str, operation, optimistic=None):
        return await self.coordinator.mutate(
            operation, invalidates=MUTATION_EFFECTS[effect], optimistic=optimistic,
        )

    async def mark_read(self, message_ids: list[int]) -> int:
        from sms.services.conversations import amark_read
        return await self._mutate(
            "mark-read",
            lambda: amark_read(message_ids, company=self.company),
            optimistic={SMS_UNREAD_COUNT: _decrement(len(set(message_ids)))},
        )

    async def send_reply(self, client_id: int, body: str):
        from sms.services.conversations import asend_reply
        return await self._mutate("send-reply", lambda: asend_reply(client_id, body, company=self.company))

    async def retry_message(self, message_id: int):
        from sms.services.conversations import aretry_message
        return await self._mutate("retry-message", lambda: aretry_message(message_id, company=self.company))

    async def record_conversion(self, referral_id: int):
        from dashboard.services.attribution import record_conversion
        return await self._mutate(
            "record-conversion",
            lambda: sync_to_async(record_conversion)(referral_id, company=self.company),
            optimistic={REFERRALS_PENDING_COUNT: _decrement()},
        )

    async def set_reward(self, referral_id: int, given: bool, amount: Optional[str] = None,
                         notes: Optional[str] = None):
        from rewards.services.core import set_reward
        return await self._mutate(
            "set-reward",
            lambda: sync_to_async(set_reward)(referral_id, given, amount, notes, company=self.company),
        )

    async def send_reminder(self, referral_id: int):
        from dashboard.services.attribution import send_reminder
        return await self._mutate(
            "send-reminder",
            lambda: sync_to_async(send_reminder)(referral_id, company=self.company),
        )
