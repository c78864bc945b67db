import pytest

from core.exceptions import AlreadyConverted, NotConverted
from dashboard.services.transitions import (
    ReferralState,
    RewardState,
    convert,
    decide_reward,
)


def test_convert_once():
    assert convert(ReferralState.PENDING) is ReferralState.CONVERTED
    with pytest.raises(AlreadyConverted):
        convert(ReferralState.CONVERTED)


def test_reward_requires_conversion():
    with pytest.raises(NotConverted):
        decide_reward(ReferralState.PENDING, RewardState.NONE, True)


@pytest.mark.parametrize("current,given,state,changed", [
    (RewardState.NONE, True, RewardState.GIVEN, True),
    (RewardState.NONE, False, RewardState.WITHHELD, True),
    (RewardState.GIVEN, True, RewardState.GIVEN, False),
    (RewardState.GIVEN, False, RewardState.WITHHELD, True),
    (RewardState.WITHHELD, False, RewardState.WITHHELD, False),
])
def test_decide_reward(current, given, state, changed):
    decision = decide_reward(ReferralState.CONVERTED, current, given)
    assert decision.state is state
    assert decision.changed is changed
