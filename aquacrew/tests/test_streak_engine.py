from datetime import date, timedelta

import pytest

from aquacrew.core.documents import Increment, InMemoryDocumentStore
from aquacrew.core.errors import TransientStoreError
from aquacrew.core.metrics import streak_updates_total, trigger_deliveries_total
from aquacrew.core.triggers import DocumentWriteEvent, TriggerDispatcher
from aquacrew.features.streaks.engine import StreakEngine, compute_transition
from aquacrew.models.profile import UserProfile, profile_path
from aquacrew.models.progress import daily_progress_path


class FlakyStore(InMemoryDocumentStore):
    """Fails the first `failures` profile transactions with a transient error."""

    def __init__(self, failures: int, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.transaction_calls = 0

    def transaction(self, path, fn):
        self.transaction_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise TransientStoreError("firestore unavailable")
        return super().transaction(path, fn)


def _profile(store, uid="u1"):
    return store.get(profile_path(uid))


def test_consecutive_day_increments_streak(store, seed):
    seed(currentStreak=3, longestStreak=3, lastGoalAchievedDate="2024-01-01")
    engine = StreakEngine(store)

    transition = engine.evaluate("u1", "2024-01-02", 2000)

    profile = _profile(store)
    assert transition.current_streak == 4
    assert profile["currentStreak"] == 4
    assert profile["longestStreak"] == 4
    assert profile["lastGoalAchievedDate"] == "2024-01-02"


def test_gap_resets_streak(store, seed):
    seed(currentStreak=3, longestStreak=3, lastGoalAchievedDate="2024-01-01")
    engine = StreakEngine(store)

    engine.evaluate("u1", "2024-01-05", 2400)

    profile = _profile(store)
    assert profile["currentStreak"] == 1
    assert profile["longestStreak"] == 3
    assert profile["lastGoalAchievedDate"] == "2024-01-05"


def test_first_achievement_starts_streak_at_one(store, seed):
    seed()
    StreakEngine(store).evaluate("u1", "2024-03-10", 2000)

    profile = _profile(store)
    assert profile["currentStreak"] == 1
    assert profile["longestStreak"] == 1


def test_second_evaluation_of_same_date_is_noop(store, seed):
    seed(currentStreak=3, longestStreak=5, lastGoalAchievedDate="2024-01-01")
    engine = StreakEngine(store)

    engine.evaluate("u1", "2024-01-02", 2000)
    after_first = _profile(store)
    assert engine.evaluate("u1", "2024-01-02", 2500) is None

    assert _profile(store) == after_first
    assert streak_updates_total.value({"outcome": "already_recorded"}) == 1


def test_below_goal_has_no_effect(store, seed):
    original = seed(currentStreak=2, longestStreak=2, lastGoalAchievedDate="2024-01-01")

    assert StreakEngine(store).evaluate("u1", "2024-01-02", 1999) is None
    assert _profile(store) == original


def test_missing_goal_defaults_to_2000(store, seed):
    seed(hydrationGoal=None)
    engine = StreakEngine(store)

    assert engine.evaluate("u1", "2024-01-02", 1999) is None
    assert engine.evaluate("u1", "2024-01-02", 2000).current_streak == 1


def test_custom_goal_is_respected(store, seed):
    seed(hydrationGoal=1500)

    transition = StreakEngine(store).evaluate("u1", "2024-01-02", 1500)

    assert transition is not None
    assert _profile(store)["currentStreak"] == 1


def test_crossing_seven_days_appends_weekly_1(store, seed):
    seed(currentStreak=6, longestStreak=6, lastGoalAchievedDate="2024-01-01")

    transition = StreakEngine(store).evaluate("u1", "2024-01-02", 2000)

    assert transition.new_milestones == ["weekly_1"]
    assert _profile(store)["unviewedMilestones"] == ["weekly_1"]


def test_crossing_thirty_days_appends_monthly_1(store, seed):
    seed(currentStreak=29, longestStreak=29, lastGoalAchievedDate="2024-01-01", unviewedMilestones=["weekly_4"])

    StreakEngine(store).evaluate("u1", "2024-01-02", 2000)

    assert _profile(store)["unviewedMilestones"] == ["weekly_4", "monthly_1"]


def test_transition_to_thirty_appends_monthly_1_only():
    profile = UserProfile(uid="u1", current_streak=29, longest_streak=29, last_goal_achieved_date="2024-01-01")

    transition = compute_transition(profile, date(2024, 1, 2))

    assert transition.current_streak == 30
    assert transition.new_milestones == ["monthly_1"]


def test_existing_milestone_is_not_duplicated(store, seed):
    seed(currentStreak=6, longestStreak=20, lastGoalAchievedDate="2024-01-01", unviewedMilestones=["weekly_1"])

    StreakEngine(store).evaluate("u1", "2024-01-02", 2000)

    assert _profile(store)["unviewedMilestones"] == ["weekly_1"]


def test_reset_streak_can_earn_weekly_1_again(store, seed):
    seed(currentStreak=6, longestStreak=12, lastGoalAchievedDate="2024-01-01", unviewedMilestones=[])

    StreakEngine(store).evaluate("u1", "2024-01-02", 2000)

    profile = _profile(store)
    assert profile["unviewedMilestones"] == ["weekly_1"]
    assert profile["longestStreak"] == 12


def test_longest_streak_never_decreases(store, seed):
    seed()
    engine = StreakEngine(store)
    start = date(2024, 1, 1)
    offsets = [0, 1, 2, 3, 7, 8, 20, 21, 22, 23, 24, 40]

    seen = []
    for offset in offsets:
        engine.evaluate("u1", (start + timedelta(days=offset)).isoformat(), 2000)
        seen.append(_profile(store)["longestStreak"])

    assert seen == sorted(seen)
    assert seen[-1] == 5


def test_out_of_order_older_date_resets_streak(store, seed):
    seed(currentStreak=3, longestStreak=3, lastGoalAchievedDate="2024-01-03")

    transition = StreakEngine(store).evaluate("u1", "2024-01-02", 2000)

    assert transition.current_streak == 1
    profile = _profile(store)
    assert profile["lastGoalAchievedDate"] == "2024-01-02"
    assert profile["longestStreak"] == 3


def test_missing_profile_aborts_without_effect(store):
    assert StreakEngine(store).evaluate("ghost", "2024-01-02", 5000) is None
    assert _profile(store, "ghost") is None
    assert streak_updates_total.value({"outcome": "profile_missing"}) == 1


def test_invalid_date_key_is_ignored(store, seed):
    original = seed()

    assert StreakEngine(store).evaluate("u1", "not-a-date", 5000) is None
    assert _profile(store) == original


@pytest.mark.parametrize("day", ["20240102", "2024-W01-2", "2024-01-02T00:00:00"])
def test_non_canonical_date_key_is_ignored(store, seed, day):
    original = seed(currentStreak=3, longestStreak=3, lastGoalAchievedDate="2024-01-01")
    engine = StreakEngine(store)

    assert engine.evaluate("u1", day, 2000) is None
    assert engine.evaluate("u1", day, 2000) is None
    assert _profile(store) == original
    assert streak_updates_total.value({"outcome": "invalid_date"}) == 2


def test_null_streak_fields_read_as_zero(store, seed):
    seed(currentStreak=None, longestStreak=None, lastGoalAchievedDate=None, unviewedMilestones=None)
    StreakEngine(store).register()

    store.set(daily_progress_path("u1", "2024-01-02"), {"currentIntake": 2500})

    profile = _profile(store)
    assert profile["currentStreak"] == 1
    assert profile["longestStreak"] == 1
    assert profile["lastGoalAchievedDate"] == "2024-01-02"
    assert profile["unviewedMilestones"] == []


def test_delete_event_is_ignored(store, seed):
    original = seed()
    engine = StreakEngine(store)
    event = DocumentWriteEvent(
        path=daily_progress_path("u1", "2024-01-02"),
        params={"uid": "u1", "date": "2024-01-02"},
        before={"currentIntake": 2500},
        after=None,
    )

    assert engine.handle_progress_written(event) is None
    assert _profile(store) == original


def test_progress_writes_trigger_engine(store, seed):
    seed(currentStreak=1, longestStreak=1, lastGoalAchievedDate="2024-01-01")
    StreakEngine(store).register()
    path = daily_progress_path("u1", "2024-01-02")

    store.set(path, {"currentIntake": Increment(1000)}, merge=True)
    assert _profile(store)["currentStreak"] == 1

    store.set(path, {"currentIntake": Increment(1000)}, merge=True)
    assert _profile(store)["currentStreak"] == 2

    # Further logs on an achieved day are absorbed by the idempotence guard
    store.set(path, {"currentIntake": Increment(250)}, merge=True)
    assert _profile(store)["currentStreak"] == 2


def test_unregistered_engine_stops_reacting(store, seed):
    seed()
    unsubscribe = StreakEngine(store).register()
    unsubscribe()

    store.set(daily_progress_path("u1", "2024-01-02"), {"currentIntake": 3000})

    assert _profile(store)["currentStreak"] == 0


def test_transient_failure_is_redelivered():
    flaky = FlakyStore(failures=2, triggers=TriggerDispatcher(max_attempts=3))
    flaky.set(profile_path("u1"), {"uid": "u1", "hydrationGoal": 2000, "currentStreak": 0, "longestStreak": 0, "lastGoalAchievedDate": "", "unviewedMilestones": []})
    StreakEngine(flaky).register()

    flaky.set(daily_progress_path("u1", "2024-01-02"), {"currentIntake": 2000})

    assert flaky.transaction_calls == 3
    assert flaky.get(profile_path("u1"))["currentStreak"] == 1
    assert trigger_deliveries_total.value({"status": "retry"}) == 2


def test_exhausted_retries_leave_profile_untouched():
    flaky = FlakyStore(failures=10, triggers=TriggerDispatcher(max_attempts=3))
    flaky.set(profile_path("u1"), {"uid": "u1", "hydrationGoal": 2000, "currentStreak": 4, "lastGoalAchievedDate": "2024-01-01"})
    StreakEngine(flaky).register()

    flaky.set(daily_progress_path("u1", "2024-01-02"), {"currentIntake": 2000})

    assert flaky.transaction_calls == 3
    assert flaky.get(profile_path("u1"))["currentStreak"] == 4
    assert trigger_deliveries_total.value({"status": "exhausted"}) == 1


def test_commit_is_a_single_transaction(store, seed):
    seed(currentStreak=6, longestStreak=6, lastGoalAchievedDate="2024-01-01")
    calls = []
    original_update = store.update
    original_transaction = store.transaction

    def spy_update(path, fields):
        calls.append(("update", path))
        return original_update(path, fields)

    def spy_transaction(path, fn):
        calls.append(("transaction", path))
        return original_transaction(path, fn)

    store.update = spy_update
    store.transaction = spy_transaction

    StreakEngine(store).evaluate("u1", "2024-01-02", 2000)

    assert calls == [("transaction", profile_path("u1"))]
    profile = _profile(store)
    assert (profile["currentStreak"], profile["longestStreak"], profile["lastGoalAchievedDate"], profile["unviewedMilestones"]) == (
        7,
        7,
        "2024-01-02",
        ["weekly_1"],
    )


@pytest.mark.parametrize(
    "last, streak, day, expected",
    [
        ("", 0, "2024-03-01", 1),
        ("2024-02-29", 9, "2024-03-01", 10),
        ("2023-12-31", 4, "2024-01-01", 5),
        ("2024-02-28", 9, "2024-03-01", 1),
    ],
)
def test_yesterday_uses_calendar_arithmetic(last, streak, day, expected):
    profile = UserProfile(uid="u1", current_streak=streak, longest_streak=streak, last_goal_achieved_date=last)
    assert compute_transition(profile, date.fromisoformat(day)).current_streak == expected
