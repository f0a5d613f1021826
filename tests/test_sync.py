"""Tests for change detection, throttling, reconciliation and the sync engine."""

import dataclasses
import random
from datetime import timedelta

import pytest

from conftest import NOW, FakeClock, make_alert, make_crop, make_rec, make_weather
from store import KeyValueBackend, RecommendationStore
from sync import RecommendationSync, Snapshot, has_meaningful_change, reconcile, try_acquire


# ---------------------------------------------------------------------------
# has_meaningful_change
# ---------------------------------------------------------------------------

class TestChangeDetector:
    def test_first_observation_counts_as_change(self):
        assert has_meaningful_change(None, [], None, [], None, None)

    def test_equal_values_in_new_containers(self):
        prev = ([make_crop()], [make_alert()], make_weather())
        cur = ([make_crop()], [make_alert()], make_weather())
        assert prev[0] is not cur[0]
        args = (prev[0], cur[0], prev[1], cur[1], prev[2], cur[2])
        assert has_meaningful_change(*args) is False
        assert has_meaningful_change(*args) is False

    def test_list_and_tuple_containers_compare_equal(self):
        assert not has_meaningful_change([make_crop()], (make_crop(),), [], (), None, None)

    @pytest.mark.parametrize("field", ["crops", "alerts", "weather"])
    def test_any_source_differs(self, field):
        base = {"crops": [make_crop()], "alerts": [make_alert()], "weather": make_weather()}
        changed = dict(base)
        if field == "crops":
            changed["crops"] = [make_crop(name="Papa Sur")]
        elif field == "alerts":
            changed["alerts"] = [make_alert(severity="medium")]
        else:
            changed["weather"] = make_weather(humidity=90)
        assert has_meaningful_change(base["crops"], changed["crops"],
                                     base["alerts"], changed["alerts"],
                                     base["weather"], changed["weather"])

    def test_weather_loaded_after_start(self):
        assert has_meaningful_change([], [], [], [], None, make_weather())


# ---------------------------------------------------------------------------
# try_acquire
# ---------------------------------------------------------------------------

class TestThrottleGate:
    def test_first_fire_allowed(self):
        assert try_acquire(5, None, 30_000)

    def test_inside_interval_denied(self):
        assert not try_acquire(29_999, 0, 30_000)

    def test_interval_boundary_allowed(self):
        assert try_acquire(30_000, 0, 30_000)


# ---------------------------------------------------------------------------
# reconcile
# ---------------------------------------------------------------------------

class TestReconcile:
    def test_expired_one_ms_ago_is_dropped(self):
        stale = make_rec("old", title="Vieja", valid_until=NOW - timedelta(milliseconds=1))
        assert reconcile([stale], [], NOW) == []

    def test_valid_until_equal_to_now_is_expired(self):
        assert reconcile([make_rec(valid_until=NOW)], [], NOW) == []

    def test_expired_entry_dropped_even_if_candidate_matches(self):
        stale = make_rec("old", title="T", valid_until=NOW - timedelta(minutes=1),
                         created_at=NOW - timedelta(days=1), is_read=True)
        fresh = make_rec("new", title="T")
        assert reconcile([stale], [fresh], NOW) == [fresh]

    def test_duplicate_candidate_keeps_existing(self):
        existing = make_rec("e1", title="Protección para Papa Norte - Helada intensa",
                            related_crop="Papa Norte", created_at=NOW - timedelta(hours=2),
                            is_read=True)
        candidate = make_rec("c1", title="Protección para Papa Norte - Helada intensa",
                             related_crop="Papa Norte", created_at=NOW)
        result = reconcile([existing], [candidate], NOW)
        assert result == [existing]
        assert result[0] is existing

    def test_same_title_other_crop_is_not_duplicate(self):
        existing = make_rec("e1", title="X", related_crop="Papa Norte", created_at=NOW - timedelta(hours=1))
        candidate = make_rec("c1", title="X", related_crop="Quinua Alta")
        assert len(reconcile([existing], [candidate], NOW)) == 2

    def test_duplicates_inside_one_batch_collapse(self):
        a = make_rec("a", title="X", related_crop="Papa Norte")
        b = make_rec("b", title="X", related_crop="Papa Norte")
        assert reconcile([], [a, b], NOW) == [a]

    def test_newest_first(self):
        old = make_rec("old", title="A", created_at=NOW - timedelta(days=2))
        mid = make_rec("mid", title="B", created_at=NOW - timedelta(days=1))
        new = make_rec("new", title="C", created_at=NOW)
        assert [r.id for r in reconcile([old, mid], [new], NOW)] == ["new", "mid", "old"]

    def test_reconcile_with_empty_batch_is_idempotent(self):
        existing = [
            make_rec("e1", title="A", created_at=NOW - timedelta(hours=3), is_read=True),
            make_rec("e2", title="B", created_at=NOW - timedelta(hours=1),
                     valid_until=NOW + timedelta(hours=1)),
            make_rec("e3", title="C", valid_until=NOW - timedelta(seconds=1)),
        ]
        batch = [make_rec("n1", title="D"), make_rec("n2", title="A")]
        once = reconcile(existing, batch, NOW)
        assert reconcile(once, [], NOW) == once

    def test_read_state_untouched(self):
        read = make_rec("e1", title="A", created_at=NOW - timedelta(hours=1), is_read=True)
        result = reconcile([read], [make_rec("n1", title="B")], NOW)
        assert next(r for r in result if r.id == "e1").is_read is True


# ---------------------------------------------------------------------------
# RecommendationSync
# ---------------------------------------------------------------------------

def _engine(clock: FakeClock, storage=None):
    store = RecommendationStore(KeyValueBackend(storage if storage is not None else {}), clock=clock)
    sync = RecommendationSync(store, clock=clock, monotonic_ms=clock.monotonic_ms, rng=random.Random(0))
    return sync, store


def _snapshot(humidity=85.0, crops=None, alerts=()):
    crops = crops if crops is not None else [make_crop(days_ago=50)]
    return Snapshot.of(crops, alerts, make_weather(humidity=humidity))


class TestRecommendationSync:
    def test_bootstrap_generates(self, clock):
        sync, store = _engine(clock)
        assert sync.observe(_snapshot())
        assert {r.title for r in store.recommendations} == {
            "Tiempo de aporque - Papa Norte", "Alta humedad detectada",
        }

    def test_unchanged_snapshot_does_not_regenerate(self, clock):
        sync, store = _engine(clock)
        sync.observe(_snapshot())
        clock.advance(60)
        assert sync.observe(_snapshot()) is False

    def test_throttled_attempt_leaves_store_alone(self, clock):
        storage = {}
        sync, store = _engine(clock, storage)
        sync.observe(_snapshot())
        before = store.entries()
        persisted = storage["recommendations"]

        clock.advance(10)
        storm = [make_alert(aid="a9", title="Granizo")]
        assert sync.observe(_snapshot(alerts=storm)) is False
        assert store.entries() == before
        assert storage["recommendations"] == persisted

    def test_throttled_change_is_picked_up_later(self, clock):
        sync, store = _engine(clock)
        sync.observe(_snapshot())
        clock.advance(10)
        storm = _snapshot(alerts=[make_alert(aid="a9", title="Granizo")])
        assert sync.observe(storm) is False
        clock.advance(25)
        assert sync.observe(storm) is True
        assert any(r.related_alert == "a9" for r in store.recommendations)

    def test_regeneration_does_not_duplicate(self, clock):
        sync, store = _engine(clock)
        sync.observe(_snapshot(humidity=85))
        clock.advance(31)
        assert sync.observe(_snapshot(humidity=92))
        assert len(store.recommendations) == 2

    def test_read_state_survives_cycle(self, clock):
        sync, store = _engine(clock)
        sync.observe(_snapshot())
        hilling = next(r for r in store.recommendations if r.priority == "high")
        store.mark_read(hilling.id)

        clock.advance(31)
        sync.observe(_snapshot(alerts=[make_alert()]))
        after = store.get(hilling.id)
        assert after.is_read is True
        assert after == dataclasses.replace(hilling, is_read=True)
        assert len(store.recommendations) == 3

    def test_skips_until_crops_or_alerts_exist(self, clock):
        sync, store = _engine(clock)
        assert sync.observe(Snapshot.of([], [], make_weather(humidity=95))) is False
        assert sync.previous is None
        assert sync.last_fired_ms is None

    def test_expired_entries_removed_on_next_merge(self, clock):
        sync, store = _engine(clock)
        alert = make_alert(valid_until=NOW + timedelta(hours=1))
        sync.observe(_snapshot(alerts=[alert]))
        assert any(r.related_alert == alert.id for r in store.entries())

        clock.advance(2 * 3600)
        assert all(r.related_alert != alert.id for r in store.recommendations)
        sync.observe(_snapshot(alerts=[]))
        assert all(r.related_alert != alert.id for r in store.entries())
