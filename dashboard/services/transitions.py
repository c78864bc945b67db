# dashboard/services/transitions.py
"""
Transitions d'état pures (aucun accès base).

Parrainage : PENDING -> CONVERTED, une seule fois.
Récompense : NONE -> GIVEN | WITHHELD, puis GIVEN <-> WITHHELD,
uniquement sur un parrainage converti.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from core.exceptions import AlreadyConverted, NotConverted


class ReferralState(str, Enum):
    PENDING = "pending"
    CONVERTED = "converted"


class RewardState(str, Enum):
    NONE = "none"
    GIVEN = "given"
    WITHHELD = "withheld"


@dataclass(frozen=True)
class RewardDecision:
    state: RewardState
    changed: bool


def referral_state(converted: bool) -> ReferralState:
    return ReferralState.CONVERTED if converted else ReferralState.PENDING


def reward_state(given: Optional[bool]) -> RewardState:
    if given is None:
        return RewardState.NONE
    return RewardState.GIVEN if given else RewardState.WITHHELD


def convert(state: ReferralState) -> ReferralState:
    if state is ReferralState.CONVERTED:
        raise AlreadyConverted("Parrainage déjà converti.")
    return ReferralState.CONVERTED


def decide_reward(referral: ReferralState, current: RewardState, given: bool) -> RewardDecision:
    if referral is not ReferralState.CONVERTED:
        raise NotConverted("Récompense impossible : parrainage non converti.")
    target = RewardState.GIVEN if given else RewardState.WITHHELD
    return RewardDecision(state=target, changed=current is not target)
