"""
Unit tests for the alternative route generator.
"""
import pytest

from masterly.adaptive.models import RouteName
from masterly.adaptive.path_sequencer import PathSequencer
from masterly.adaptive.route_generator import RouteGenerator


@pytest.fixture
def diamond_path(diamond_graph, entry_factory):
    ledger = {
        "root": entry_factory("root", completed=True, score=0.9),
        "left": entry_factory("left", score=0.2),
        "right": entry_factory("right", score=0.6),
    }
    return PathSequencer().build(diamond_graph.concepts_for_course("diamond"), ledger, course_id="diamond")


class TestRouteGenerator:
    def test_recommended_first_and_default_cap(self, diamond_path):
        routes = RouteGenerator().generate(diamond_path)
        assert [r.name for r in routes] == [
            RouteName.RECOMMENDED,
            RouteName.EASY_FIRST,
            RouteName.TIME_OPTIMIZED,
            RouteName.MASTERY_FOCUSED,
        ]
        assert routes[0].concept_ids == diamond_path.concept_ids
        assert routes[0].respects_prerequisites is True

    def test_every_route_is_a_permutation(self, diamond_path):
        for route in RouteGenerator().generate(diamond_path):
            assert sorted(route.concept_ids) == sorted(diamond_path.concept_ids)

    def test_easy_first_orders_by_complexity(self, diamond_path):
        easy = RouteGenerator().generate(diamond_path)[1]
        complexities = [c.complexity for c in easy.concepts]
        assert complexities == sorted(complexities)

    def test_time_optimized_orders_by_hours(self, diamond_path):
        timed = RouteGenerator().generate(diamond_path)[2]
        assert timed.concept_ids[0] == "right"
        hours = [c.estimated_hours for c in timed.concepts]
        assert hours == sorted(hours)

    def test_mastery_focused_puts_weakest_first(self, diamond_path):
        focused = RouteGenerator().generate(diamond_path)[3]
        assert focused.concept_ids[0] == "goal"
        assert focused.concept_ids[-1] == "root"
        assert focused.respects_prerequisites is False

    def test_cap_limits_alternates(self, diamond_path):
        assert len(RouteGenerator(max_alternatives=1).generate(diamond_path)) == 2
        assert len(RouteGenerator(max_alternatives=0).generate(diamond_path)) == 1

    def test_decoration_identical_across_routes(self, diamond_path):
        routes = RouteGenerator().generate(diamond_path)
        by_id = {c.id: c for c in routes[0].concepts}
        for route in routes[1:]:
            for concept in route.concepts:
                assert concept == by_id[concept.id]

    def test_negative_cap_rejected(self):
        with pytest.raises(ValueError):
            RouteGenerator(max_alternatives=-1)
