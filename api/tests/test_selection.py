import pytest

from matchqueue.domain import QueueIntent
from matchqueue.services.selection import CandidateSelector


def test_selector_filters_intent_and_excludes_seeker(queue_store, add_waiting, now):
    add_waiting("seeker", QueueIntent.CASUAL)
    add_waiting("a", QueueIntent.CASUAL, joined_offset_seconds=2)
    add_waiting("b", QueueIntent.SERIOUS, joined_offset_seconds=1)
    add_waiting("c", QueueIntent.CASUAL, joined_offset_seconds=1)

    ids = CandidateSelector(queue_store).select("seeker", QueueIntent.CASUAL, now=now)
    assert ids == ["c", "a"]


def test_selector_caps_pool_to_oldest_entries(queue_store, add_waiting, now):
    for i in range(5):
        add_waiting(f"u{i}", joined_offset_seconds=i)
    assert CandidateSelector(queue_store, cap=3).select("seeker", QueueIntent.CASUAL, now=now) == ["u0", "u1", "u2"]


def test_selector_skips_expired_entries(queue_store, add_waiting, now):
    add_waiting("stale", expires_at=now)
    add_waiting("fresh")
    assert CandidateSelector(queue_store).select("seeker", QueueIntent.CASUAL, now=now) == ["fresh"]


def test_selector_never_returns_seeker_even_if_store_does(add_waiting, queue_store, now):
    entry = add_waiting("seeker")

    class _LeakyStore:
        def list_waiting(self, intent, exclude_user_id, limit, now):
            return [entry]

    assert CandidateSelector(_LeakyStore()).select("seeker", QueueIntent.CASUAL, now=now) == []


def test_candidates_are_not_reserved(queue_store, add_waiting, now):
    add_waiting("candidate")
    selector = CandidateSelector(queue_store)
    assert selector.select("s1", QueueIntent.CASUAL, now=now) == ["candidate"]
    assert selector.select("s2", QueueIntent.CASUAL, now=now) == ["candidate"]


def test_selector_rejects_non_positive_cap(queue_store):
    with pytest.raises(ValueError):
        CandidateSelector(queue_store, cap=0)
