# core/sync/coordinator.py
"""
Coordinateur de polling côté session (asyncio, un seul fil coopératif).

- chaque abonnement interroge sa clé à intervalle fixe,
- chaque rafraîchissement remplace la valeur en cache (jamais de fusion) ;
  le résultat d'une requête partie avant une autre ne l'écrase jamais,
- un échec garde la valeur précédente et note l'erreur,
- une mutation invalide les clés touchées et déclenche leur relecture.
"""
from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

QueryKey = tuple
Fetcher = Callable[[QueryKey], Awaitable[Any]]
Listener = Callable[[QueryKey, "CacheEntry"], None]


@dataclass
class CacheEntry:
    data: Any = None
    error: Optional[BaseException] = None
    has_data: bool = False
    stale: bool = True
    seq: int = 0
    updated_at: Optional[float] = None


class Subscription:
    def __init__(self, coordinator: "PollingCoordinator", key: QueryKey, interval_ms: int):
        self.key = key
        self.interval_ms = interval_ms
        self.cancelled = False
        self._coordinator = coordinator
        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def interval(self) -> float:
        return self.interval_ms / 1000.0

    def cancel(self) -> None:
        """Stoppe les prochains passages ; une requête en vol se termine mais son résultat est ignoré."""
        if self.cancelled:
            return
        self.cancelled = True
        self._wake.set()
        self._coordinator._forget(self)

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def __repr__(self):
        state = "cancelled" if self.cancelled else "active"
        return f"<Subscription {self.key!r} every {self.interval_ms}ms {state}>"


class PollingCoordinator:
    def __init__(self, fetch: Fetcher):
        self._fetch = fetch
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._subscriptions: dict[QueryKey, set[Subscription]] = {}
        self._seq = itertools.count(1)
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Lecture du cache
    # ------------------------------------------------------------------
    def entry(self, key: QueryKey) -> Optional[CacheEntry]:
        return self._entries.get(tuple(key))

    def get(self, key: QueryKey, default: Any = None) -> Any:
        entry = self.entry(key)
        return entry.data if entry is not None and entry.has_data else default

    def keys(self) -> list[QueryKey]:
        return list(self._entries)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Abonnements
    # ------------------------------------------------------------------
    def subscribe(self, key: QueryKey, interval_ms: int) -> Subscription:
        if interval_ms <= 0:
            raise ValueError("interval_ms doit être strictement positif.")
        key = tuple(key)
        sub = Subscription(self, key, interval_ms)
        self._subscriptions.setdefault(key, set()).add(sub)
        sub._task = asyncio.get_running_loop().create_task(self._poll(sub), name=f"poll:{key!r}")
        logger.debug("subscribed %r", sub)
        return sub

    def has_subscribers(self, key: QueryKey) -> bool:
        return bool(self._subscriptions.get(tuple(key)))

    def _forget(self, sub: Subscription) -> None:
        subs = self._subscriptions.get(sub.key)
        if subs is not None:
            subs.discard(sub)
            if not subs:
                del self._subscriptions[sub.key]

    async def _poll(self, sub: Subscription) -> None:
        while not sub.cancelled:
            sub._wake.clear()
            await self.refresh(sub.key, require_subscriber=True)
            if sub.cancelled:
                break
            try:
                await asyncio.wait_for(sub._wake.wait(), sub.interval)
            except asyncio.TimeoutError:
                pass

    async def close(self) -> None:
        subs = [s for group in self._subscriptions.values() for s in group]
        for sub in subs:
            sub.cancel()
        await asyncio.gather(*(s.wait_closed() for s in subs))

    # ------------------------------------------------------------------
    # Rafraîchissement
    # ------------------------------------------------------------------
    async def refresh(self, key: QueryKey, *, require_subscriber: bool = False) -> CacheEntry:
        key = tuple(key)
        seq = next(self._seq)
        try:
            data = await self._fetch(key)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            entry = self._entries.setdefault(key, CacheEntry())
            if seq > entry.seq:
                entry.error = exc
            logger.warning("poll %r failed, keeping last value: %s", key, exc)
            return entry

        if require_subscriber and not self.has_subscribers(key):
            logger.debug("poll %r: no live subscriber, result dropped", key)
            return self._entries.setdefault(key, CacheEntry())

        entry = self._entries.setdefault(key, CacheEntry())
        if seq <= entry.seq:
            logger.debug("poll %r: older result (seq %s <= %s) dropped", key, seq, entry.seq)
            return entry

        entry.data = data
        entry.error = None
        entry.has_data = True
        entry.stale = False
        entry.seq = seq
        entry.updated_at = asyncio.get_running_loop().time()
        for listener in list(self._listeners):
            listener(key, entry)
        return entry

    def _matching(self, prefixes: Iterable[QueryKey]) -> list[QueryKey]:
        known = set(self._entries) | set(self._subscriptions)
        prefixes = [tuple(p) for p in prefixes]
        return sorted(
            (k for k in known if any(k[: len(p)] == p for p in prefixes)),
            key=repr,
        )

    async def invalidate(self, *prefixes: QueryKey) -> list[QueryKey]:
        """Relit tout de suite les clés abonnées correspondantes, marque les autres périmées."""
        keys = self._matching(prefixes)
        live = []
        for key in keys:
            if self.has_subscribers(key):
                live.append(key)
            elif key in self._entries:
                self._entries[key].stale = True
        if live:
            await asyncio.gather(*(self.refresh(k, require_subscriber=True) for k in live))
        logger.info("invalidated %s key(s), refetched %s", len(keys), len(live))
        return keys

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def mutate(self, operation: Callable[[], Any], *,
                     invalidates: Iterable[QueryKey] = (),
                     optimistic: Optional[Mapping[QueryKey, Callable[[Any], Any]]] = None) -> Any:
        """
        Applique d'éventuelles mises à jour optimistes (l'updater renvoie une
        nouvelle valeur), exécute l'écriture, puis invalide les clés touchées.
        En cas d'échec, les valeurs précédentes sont restaurées et l'erreur remonte.
        Après succès, aucune valeur optimiste ne reste affichée : chaque clé
        concernée est relue depuis la source.
        """
        snapshots: dict[QueryKey, Any] = {}
        for key, updater in (optimistic or {}).items():
            entry = self.entry(key)
            if entry is None or not entry.has_data:
                continue
            snapshots[tuple(key)] = (entry.data, entry.seq)
            entry.data = updater(entry.data)

        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            for key, (data, seq) in snapshots.items():
                entry = self._entries[key]
                # Une relecture plus récente a déjà remplacé la valeur optimiste
                if entry.seq == seq:
                    entry.data = data
            logger.warning("mutation failed, %s optimistic value(s) rolled back", len(snapshots))
            raise

        await self.invalidate(*invalidates)

        # Valeurs optimistes encore en place : relues, sinon restaurées et périmées
        guessed = [k for k, (_, seq) in snapshots.items() if self._entries[k].seq == seq]
        if guessed:
            await asyncio.gather(*(self.refresh(k) for k in guessed))
        for key in guessed:
            data, seq = snapshots[key]
            entry = self._entries[key]
            if entry.seq == seq:
                entry.data = data
                entry.stale = True
        return result
