"""
Unit tests for the unlock resolver.

Pure reads over ledger snapshots, no stores involved.
"""
import itertools

import pytest

from masterly.adaptive.unlock_resolver import (
    UnlockResolver,
    is_unlocked,
    merge_ledger,
    newly_unlocked,
    unlock_status,
)
from masterly.core.errors import NotFoundError
from masterly.core.models import Concept, ProgressStatus


class TestIsUnlocked:
    def test_no_prerequisites_always_unlocked(self):
        assert is_unlocked(Concept(id="A", title="A"), {}) is True

    def test_missing_entry_locks(self):
        concept = Concept(id="B", title="B", prerequisites=("A",))
        assert is_unlocked(concept, {}) is False

    def test_completed_prerequisite_unlocks(self, entry_factory):
        concept = Concept(id="B", title="B", prerequisites=("A",))
        assert is_unlocked(concept, {"A": entry_factory("A", completed=True)}) is True

    def test_no_partial_credit(self, entry_factory):
        concept = Concept(id="D", title="D", prerequisites=("A", "B", "C"))
        ledger = {
            "A": entry_factory("A", completed=True),
            "B": entry_factory("B", completed=True),
        }
        assert is_unlocked(concept, ledger) is False

    def test_mastered_but_regressed_entry_does_not_unlock(self, entry_factory):
        # Mastery survives an anti-cheat regression but status no longer counts
        entry = entry_factory("A", score=0.9, mastered=True)
        entry.status = ProgressStatus.IN_PROGRESS
        concept = Concept(id="B", title="B", prerequisites=("A",))
        assert is_unlocked(concept, {"A": entry}) is False

    def test_monotonic_under_additional_completions(self, diamond_graph, entry_factory):
        ids = ["root", "left", "right", "goal"]
        for size in range(len(ids) + 1):
            for completed in itertools.combinations(ids, size):
                ledger = {cid: entry_factory(cid, completed=True) for cid in completed}
                unlocked = {c.id for c in diamond_graph.concepts if is_unlocked(c, ledger)}
                for extra in ids:
                    grown = dict(ledger)
                    grown[extra] = entry_factory(extra, completed=True)
                    grown_unlocked = {c.id for c in diamond_graph.concepts if is_unlocked(c, grown)}
                    assert unlocked <= grown_unlocked


class TestUnlockStatus:
    def test_reasons(self, chain_graph, entry_factory):
        a, b = chain_graph.get_concept("A"), chain_graph.get_concept("B")
        assert unlock_status(a, {}).unlock_reason == "no_prerequisites"
        assert unlock_status(b, {"A": entry_factory("A", completed=True)}).unlock_reason == "prerequisites_met"

    def test_blocking_prerequisite_details(self, chain_graph, entry_factory):
        b = chain_graph.get_concept("B")
        status = unlock_status(b, {"A": entry_factory("A", score=0.4)}, chain_graph)

        assert status.is_unlocked is False
        assert status.unlock_reason == "blocked_by_prerequisites"
        [blocking] = status.blocking_prerequisites
        assert blocking.concept_id == "A"
        assert blocking.concept_name == "Arrays"
        assert blocking.current_score == pytest.approx(0.4)
        assert blocking.status == ProgressStatus.NOT_STARTED

    def test_unknown_prerequisite_reports_its_id(self):
        concept = Concept(id="X", title="X", prerequisites=("ghost",))
        [blocking] = unlock_status(concept, {}).blocking_prerequisites
        assert blocking.concept_name == "ghost"
        assert blocking.current_score == 0.0


class TestMergeLedger:
    def test_completed_entry_wins_over_higher_score(self, entry_factory):
        in_course = entry_factory("A", course_id="dsa", completed=True, score=0.8)
        standalone = entry_factory("A", score=0.95)
        merged = merge_ledger([standalone, in_course])
        assert merged["A"] is in_course

    def test_higher_score_wins_among_incomplete(self, entry_factory):
        low = entry_factory("A", course_id="x", score=0.2)
        high = entry_factory("A", course_id="y", score=0.6)
        assert merge_ledger([low, high])["A"] is high


class TestNewlyUnlocked:
    def test_preserves_after_order(self):
        assert newly_unlocked(["A"], ["A", "C", "B"]) == ["C", "B"]

    def test_nothing_new(self):
        assert newly_unlocked({"A", "B"}, ["A", "B"]) == []


class TestUnlockResolver:
    def test_chain_with_empty_ledger(self, chain_graph):
        assert UnlockResolver(chain_graph).get_unlocked({}) == {"A"}

    def test_chain_with_a_completed(self, chain_graph, entry_factory):
        ledger = {"A": entry_factory("A", completed=True), "B": entry_factory("B")}
        assert UnlockResolver(chain_graph).get_unlocked(ledger, "dsa") == {"A", "B"}

    def test_unknown_course_raises(self, chain_graph):
        with pytest.raises(NotFoundError):
            UnlockResolver(chain_graph).get_unlocked({}, "nope")

    def test_check_unknown_concept_raises(self, chain_graph):
        with pytest.raises(NotFoundError):
            UnlockResolver(chain_graph).check("nope", {})
