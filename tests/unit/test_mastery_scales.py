"""
Unit tests for score scale conversions and mastery levels.
"""
import pytest

from masterly.core.mastery import (
    MasteryLevel,
    clamp_unit,
    format_progress_bar,
    percent_to_unit,
    unit_to_display,
    unit_to_percent,
)


class TestScaleConversions:
    def test_percent_to_unit(self):
        assert percent_to_unit(80) == pytest.approx(0.8)
        assert percent_to_unit(150) == 1.0
        assert percent_to_unit(-5) == 0.0

    def test_unit_to_percent(self):
        assert unit_to_percent(0.75) == pytest.approx(75.0)

    def test_unit_to_display(self):
        assert unit_to_display(0.734) == pytest.approx(7.34)
        assert unit_to_display(2) == 10.0

    def test_clamp(self):
        assert clamp_unit(-1) == 0.0
        assert clamp_unit(0.5) == 0.5


class TestMasteryLevel:
    @pytest.mark.parametrize(
        "score,level",
        [
            (0.0, MasteryLevel.NOT_STARTED),
            (0.2, MasteryLevel.NOVICE),
            (0.5, MasteryLevel.DEVELOPING),
            (0.7, MasteryLevel.PROFICIENT),
            (0.95, MasteryLevel.MASTERED),
        ],
    )
    def test_from_score(self, score, level):
        assert MasteryLevel.from_score(score) == level

    def test_display_name(self):
        assert MasteryLevel.NOT_STARTED.display_name == "Not Started"


class TestProgressBar:
    def test_bar(self):
        assert format_progress_bar(50, width=10) == "█████░░░░░"
        assert format_progress_bar(150, width=4) == "████"
