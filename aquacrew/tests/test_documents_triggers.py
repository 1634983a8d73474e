import pytest

from aquacrew.core.documents import ArrayRemove, ArrayUnion, Increment, InMemoryDocumentStore, apply_field
from aquacrew.core.errors import NotFoundError, TransientStoreError
from aquacrew.core.metrics import trigger_deliveries_total
from aquacrew.core.triggers import TriggerDispatcher, match_pattern


# Sentinels ---------------------------------------------------------------

def test_increment_treats_missing_as_zero():
    assert apply_field(None, Increment(250)) == 250
    assert apply_field(250, Increment(250)) == 500


def test_array_union_and_remove():
    assert apply_field(["a"], ArrayUnion("a", "b")) == ["a", "b"]
    assert apply_field(["a", "b", "a"], ArrayRemove("a")) == ["b"]
    assert apply_field(None, ArrayRemove("a")) == []


# Store -------------------------------------------------------------------

def test_set_merge_keeps_other_fields(store):
    store.set("users/u1", {"email": "a@b.c", "hydrationGoal": 2000})
    store.set("users/u1", {"hydrationGoal": 2500}, merge=True)

    assert store.get("users/u1") == {"email": "a@b.c", "hydrationGoal": 2500}

    store.set("users/u1", {"hydrationGoal": 1800})
    assert store.get("users/u1") == {"hydrationGoal": 1800}


def test_get_returns_a_copy(store):
    store.set("users/u1", {"unviewedMilestones": []})
    store.get("users/u1")["unviewedMilestones"].append("weekly_1")

    assert store.get("users/u1") == {"unviewedMilestones": []}


def test_update_missing_document_raises(store):
    with pytest.raises(NotFoundError):
        store.update("users/ghost", {"currentStreak": 1})


def test_batch_update_is_all_or_nothing(store):
    store.set("users/a", {"n": 1})

    with pytest.raises(NotFoundError):
        store.batch_update({"users/a": {"n": 2}, "users/missing": {"n": 2}})
    assert store.get("users/a") == {"n": 1}


def test_transaction_applies_returned_updates(store):
    store.set("users/u1", {"currentStreak": 1})

    store.transaction("users/u1", lambda doc: {"currentStreak": doc["currentStreak"] + 1})

    assert store.get("users/u1") == {"currentStreak": 2}


def test_transaction_without_updates_writes_nothing(store):
    events = []
    store.set("users/u1", {"currentStreak": 1})
    store.subscribe("users/u1", events.append)

    assert store.transaction("users/u1", lambda doc: None) is None
    assert events == [{"currentStreak": 1}]


def test_transaction_on_missing_document(store):
    assert store.transaction("users/ghost", lambda doc: None if doc is None else {"x": 1}) is None
    with pytest.raises(NotFoundError):
        store.transaction("users/ghost", lambda doc: {"x": 1})


def test_query_matches_top_level_documents_only(store):
    store.set("users/b", {"onboardingComplete": True})
    store.set("users/a", {"onboardingComplete": True})
    store.set("users/c", {"onboardingComplete": False})
    store.set("users/a/daily_progress/2024-01-02", {"onboardingComplete": True})

    assert [snap.id for snap in store.query("users", "onboardingComplete", True)] == ["a", "b"]


def test_subscribe_delivers_current_then_changes(store):
    seen = []
    unsubscribe = store.subscribe("users/u1", seen.append)
    store.set("users/u1", {"n": 1})
    store.delete("users/u1")
    unsubscribe()
    store.set("users/u1", {"n": 2})

    assert seen == [None, {"n": 1}, None]


def test_failing_listener_does_not_break_writes(store):
    def boom(_):
        raise RuntimeError("listener bug")

    store.set("users/u1", {"n": 1})
    store.subscribe("users/u1", boom)
    store.update("users/u1", {"n": Increment(1)})

    assert store.get("users/u1") == {"n": 2}


# Triggers ----------------------------------------------------------------

def test_match_pattern_binds_params():
    pattern = "users/{uid}/daily_progress/{date}"

    assert match_pattern(pattern, "users/u1/daily_progress/2024-01-02") == {"uid": "u1", "date": "2024-01-02"}
    assert match_pattern(pattern, "users/u1") is None
    assert match_pattern(pattern, "teams/u1/daily_progress/2024-01-02") is None


def test_on_write_receives_before_and_after(store):
    events = []
    store.on_write("users/{uid}/daily_progress/{date}", events.append)
    path = "users/u1/daily_progress/2024-01-02"

    store.set(path, {"currentIntake": Increment(250)}, merge=True)
    store.set(path, {"currentIntake": Increment(250)}, merge=True)
    store.set("users/u1", {"email": "a@b.c"})

    assert len(events) == 2
    assert events[0].is_create
    assert events[1].before == {"currentIntake": 250}
    assert events[1].after == {"currentIntake": 500}
    assert events[1].params == {"uid": "u1", "date": "2024-01-02"}


def test_non_transient_handler_error_is_not_retried():
    calls = []

    def handler(event):
        calls.append(event)
        raise KeyError("bad payload")

    dispatcher = TriggerDispatcher(max_attempts=3)
    dispatcher.register("users/{uid}", handler)

    assert dispatcher.dispatch_write("users/u1", None, {"n": 1}) == 1
    assert len(calls) == 1
    assert trigger_deliveries_total.value({"status": "failed"}) == 1


def test_exhausted_delivery_can_raise():
    def handler(event):
        raise TransientStoreError("unavailable")

    dispatcher = TriggerDispatcher(max_attempts=2)
    dispatcher.register("users/{uid}", handler)

    with pytest.raises(TransientStoreError):
        dispatcher.dispatch_write("users/u1", None, {"n": 1}, raise_on_exhausted=True)
    assert trigger_deliveries_total.value({"status": "retry"}) == 2


def test_retry_reuses_event_id():
    seen = []

    def handler(event):
        seen.append(event.event_id)
        if len(seen) < 2:
            raise TransientStoreError("unavailable")

    dispatcher = TriggerDispatcher(max_attempts=3)
    dispatcher.register("users/{uid}", handler)
    dispatcher.dispatch_write("users/u1", None, {"n": 1})

    assert len(seen) == 2
    assert seen[0] == seen[1]


def test_default_store_has_its_own_dispatcher():
    store = InMemoryDocumentStore()
    assert store.triggers.max_attempts == 3
