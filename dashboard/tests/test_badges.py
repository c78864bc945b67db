import pytest

from dashboard.badges import Badges, collect_badges, combine_badges


def test_combine_all_present():
    badges = combine_badges({"sms": 3, "clients": 1, "referrals": 2, "pending_referrals": 5})
    assert badges.values() == {"sms": 3, "clients": 1, "referrals": 2, "pending_referrals": 5}
    assert badges.degraded == ()


def test_combine_missing_and_failed_fall_back():
    previous = Badges(sms=9, clients=4, referrals=0, pending_referrals=1)
    badges = combine_badges({"sms": RuntimeError("down"), "referrals": 2}, previous=previous)
    assert badges.sms == 9
    assert badges.clients == 4
    assert badges.referrals == 2
    assert badges.pending_referrals == 1
    assert set(badges.degraded) == {"sms", "clients", "pending_referrals"}


def test_combine_without_previous_defaults_to_zero():
    badges = combine_badges({"sms": None, "clients": -1, "referrals": True})
    assert badges.values() == {"sms": 0, "clients": 0, "referrals": 0, "pending_referrals": 0}



def test_combine_stale_reading_is_shown_but_degraded():
    badges = combine_badges({"sms": 3, "clients": 1, "referrals": 2, "pending_referrals": 5},
                            stale=["pending_referrals"])
    assert badges.pending_referrals == 5
    assert badges.degraded == ("pending_referrals",)

@pytest.mark.django_db
def test_collect_badges_one_failing_source_does_not_block_others(company):
    def broken():
        raise RuntimeError("db timeout")

    ok = {"sms": lambda: 2, "clients": lambda: 1, "referrals": lambda: 3, "pending_referrals": lambda: 4}
    first = collect_badges(company, sources=ok)
    assert first.degraded == ()

    second = collect_badges(company, sources={**ok, "sms": broken, "clients": lambda: 6})
    assert second.sms == 2
    assert second.clients == 6
    assert second.degraded == ("sms",)
