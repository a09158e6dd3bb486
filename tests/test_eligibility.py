"""
Tests for the daily win cap
"""
import pytest
from sqlalchemy.exc import OperationalError

from treasure_hunt.db.models import DailyWin
from treasure_hunt.services.eligibility_service import device_key, eligibility_service


class BrokenSession:
    """Session stand-in whose store is unreachable"""

    def __init__(self):
        self.rolled_back = False

    def query(self, *args, **kwargs):
        raise OperationalError("SELECT users", {}, Exception("could not connect to server"))

    def rollback(self):
        self.rolled_back = True


def test_new_user_is_eligible(db, today):
    result = eligibility_service.check_eligibility(db, "nobody", "physical", "phone-1", today)
    assert result["eligible"] is True
    assert "error" not in result


@pytest.mark.parametrize("won, checked, eligible", [
    ("physical", "physical", False),
    ("physical", "battle_royale", True),
    ("battle_royale", "battle_royale", False),
    ("battle_royale", "physical", True),
])
def test_categories_are_independent(db, make_user, today, won, checked, eligible):
    make_user("alice", **{f"last_{won}_win_date": today})
    result = eligibility_service.check_eligibility(db, "alice", checked, None, today)
    assert result["eligible"] is eligible
    if not eligible:
        assert result["reason"] == "user_already_won_today"
        assert "already won today" in result["message"]


def test_yesterdays_win_does_not_count(db, make_user, today):
    make_user("alice", last_physical_win_date="2024-05-31")
    assert eligibility_service.check_eligibility(db, "alice", "physical", None, today)["eligible"]


def test_device_marker_blocks_other_accounts_only(db, make_user, make_location_game, today, fixed_clock):
    alice = make_user("alice")
    game = make_location_game()
    eligibility_service.record_daily_win(
        db, alice, "physical", "shared-tablet", game, 100.0, today, fixed_clock.now()
    )
    db.commit()

    other = eligibility_service.check_eligibility(db, "bob", "physical", "shared-tablet", today)
    assert other["eligible"] is False
    assert other["reason"] == "device_already_won_today"

    other_category = eligibility_service.check_eligibility(db, "bob", "battle_royale", "shared-tablet", today)
    assert other_category["eligible"] is True


def test_record_daily_win_stamps_user(db, make_user, make_location_game, today, fixed_clock):
    alice = make_user("alice")
    game = make_location_game(name="Harbor Hunt")
    marker = eligibility_service.record_daily_win(
        db, alice, "battle_royale", None, game, 42.0, today, fixed_clock.now()
    )
    db.commit()

    assert marker.device_id == "unknown:alice"
    assert alice.last_battle_royale_win_date == today
    assert alice.last_physical_win_date is None
    assert alice.last_win_game_name == "Harbor Hunt"
    assert alice.last_win_amount == 42.0
    assert db.query(DailyWin).count() == 1


def test_pre_check_fails_open_when_store_unreachable(today):
    session = BrokenSession()
    result = eligibility_service.check_eligibility(session, "alice", "physical", "phone-1", today)
    assert result["eligible"] is True
    assert "could not connect" in result["error"]
    assert session.rolled_back


def test_strict_evaluate_propagates_store_errors(today):
    with pytest.raises(OperationalError):
        eligibility_service.evaluate(BrokenSession(), "alice", "physical", None, today)


def test_unknown_category_is_rejected(db, today):
    with pytest.raises(ValueError):
        eligibility_service.evaluate(db, "alice", "chess", None, today)


def test_device_key():
    assert device_key("abc", "alice") == "abc"
    assert device_key(None, "alice") == "unknown:alice"
    assert device_key("", "alice") == "unknown:alice"


def test_win_stats(db, make_user, today):
    make_user("alice", total_wins=2, total_earnings=150.0, balance=150.0,
              last_physical_win_date="2024-05-30", last_battle_royale_win_date=today)
    stats = eligibility_service.get_user_win_stats(db, "alice")
    assert stats["total_wins"] == 2
    assert stats["last_win_date"] == today

    empty = eligibility_service.get_user_win_stats(db, "nobody")
    assert empty["total_wins"] == 0
    assert empty["last_win_date"] is None
