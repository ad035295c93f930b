"""
Unit tests for PathSequencer ordering and decoration.

Stateless utilities only; these tests do not require a DB.
"""
import itertools

from masterly.adaptive.path_sequencer import PathSequencer, decorate
from masterly.core.errors import CycleDetectedWarning
from masterly.core.models import Concept, IconTag, ProgressStatus


def prereq_map(concepts):
    return {c.id: c.prerequisites for c in concepts}


class TestTopologicalOrder:
    def test_chain_scenario(self, chain_graph):
        path = PathSequencer().build(chain_graph.concepts_for_course("dsa"), {})
        assert path.concept_ids == ["A", "B", "C"]
        assert [c.is_unlocked for c in path.concepts] == [True, False, False]
        assert path.warnings == []

    def test_reversed_authoring_order_still_valid(self, diamond_graph):
        concepts = diamond_graph.concepts_for_course("diamond")
        ordered, _ = PathSequencer.topological_order(concepts)
        ids = [c.id for c in ordered]
        assert ids[0] == "root"
        assert ids[-1] == "goal"
        assert PathSequencer.is_topologically_valid(ids, prereq_map(concepts))

    def test_every_input_order_is_valid(self, diamond_graph):
        concepts = diamond_graph.concepts
        for permutation in itertools.permutations(concepts):
            ordered, warnings = PathSequencer.topological_order(list(permutation))
            ids = [c.id for c in ordered]
            assert sorted(ids) == sorted(c.id for c in concepts)
            assert PathSequencer.is_topologically_valid(ids, prereq_map(concepts))
            assert warnings == []

    def test_deterministic_for_fixed_input(self, diamond_graph):
        concepts = diamond_graph.concepts_for_course("diamond")
        first, _ = PathSequencer.topological_order(concepts)
        second, _ = PathSequencer.topological_order(concepts)
        assert first == second

    def test_prerequisite_outside_course_is_not_traversed(self):
        concepts = [Concept(id="B", title="B", prerequisites=("external",))]
        path = PathSequencer().build(concepts, {})
        assert path.concept_ids == ["B"]
        assert path.concepts[0].is_unlocked is False


class TestCycles:
    def test_cycle_is_reported_not_raised(self):
        concepts = [
            Concept(id="x", title="X", prerequisites=("y",)),
            Concept(id="y", title="Y", prerequisites=("x",)),
        ]
        path = PathSequencer().build(concepts, {}, course_id="loop")

        assert sorted(path.concept_ids) == ["x", "y"]
        assert path.has_cycles is True
        [warning] = path.warnings
        assert isinstance(warning, CycleDetectedWarning)
        assert warning.chain == ["x", "y", "x"]

    def test_self_loop(self):
        ordered, warnings = PathSequencer.topological_order([Concept(id="s", title="S", prerequisites=("s",))])
        assert [c.id for c in ordered] == ["s"]
        assert warnings[0].concept_id == "s"


class TestDecorate:
    def test_decoration_merges_ledger(self, chain_graph, entry_factory):
        entry = entry_factory("A", completed=True, score=0.85, attempts=2)
        entry.time_spent = 30
        decorated = decorate(chain_graph.get_concept("A"), {"A": entry})

        assert decorated.complexity == 1
        assert decorated.mastery_score == 8.5
        assert decorated.status == ProgressStatus.COMPLETED
        assert decorated.is_completed is True
        assert decorated.attempts == 2
        assert decorated.time_spent == 30
        assert decorated.icon == IconTag.TARGET
        assert decorated.locked is False

    def test_missing_entry_defaults(self, chain_graph):
        decorated = decorate(chain_graph.get_concept("C"), {})
        assert decorated.mastery_score == 0.0
        assert decorated.status == ProgressStatus.NOT_STARTED
        assert decorated.complexity == 5
        assert decorated.is_prerequisite is True


class TestValidityHelpers:
    def test_is_topologically_valid_rejects_out_of_order(self):
        assert PathSequencer.is_topologically_valid(["B", "A"], {"B": ("A",)}) is False
