"""
Core Mastery Module.

Score scales and mastery categorisation shared by the engine and its callers.

The engine stores every score on a normalized 0-1 scale. Callers speak three
dialects, so conversions live here at the boundary:
- percent (0-100): quiz submissions and course learning pages
- unit (0-1): ledger entries and all engine internals
- display (0-10): learning path view-models
"""

from __future__ import annotations

from enum import Enum


def clamp_unit(score: float) -> float:
    """Clamp a score into [0, 1]."""
    return min(max(float(score), 0.0), 1.0)


def percent_to_unit(score: float) -> float:
    """Convert a 0-100 score to the engine's 0-1 scale."""
    return clamp_unit(float(score) / 100.0)


def unit_to_percent(score: float) -> float:
    """Convert a 0-1 score to 0-100."""
    return clamp_unit(score) * 100.0


def unit_to_display(score: float) -> float:
    """Convert a 0-1 score to the 0-10 display scale used by learning paths."""
    return round(clamp_unit(score) * 10.0, 2)


class MasteryLevel(str, Enum):
    """
    Mastery level categorization.

    Bands follow the platform's 70% mastery line.
    """

    NOT_STARTED = "not_started"  # 0%
    NOVICE = "novice"  # 1-39%
    DEVELOPING = "developing"  # 40-69%
    PROFICIENT = "proficient"  # 70-89%
    MASTERED = "mastered"  # 90-100%

    @classmethod
    def from_score(cls, score: float) -> MasteryLevel:
        """
        Convert a 0-1 mastery score to a level.

        Args:
            score: Mastery score between 0 and 1

        Returns:
            Corresponding MasteryLevel
        """
        if score <= 0:
            return cls.NOT_STARTED
        elif score < 0.4:
            return cls.NOVICE
        elif score < 0.7:
            return cls.DEVELOPING
        elif score < 0.9:
            return cls.PROFICIENT
        else:
            return cls.MASTERED

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return self.value.replace("_", " ").title()

    @property
    def emoji(self) -> str:
        """Status glyph for CLI display."""
        return {
            MasteryLevel.NOT_STARTED: "○",
            MasteryLevel.NOVICE: "◔",
            MasteryLevel.DEVELOPING: "◑",
            MasteryLevel.PROFICIENT: "◕",
            MasteryLevel.MASTERED: "●",
        }[self]

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            MasteryLevel.NOT_STARTED: "dim",
            MasteryLevel.NOVICE: "red",
            MasteryLevel.DEVELOPING: "yellow",
            MasteryLevel.PROFICIENT: "cyan",
            MasteryLevel.MASTERED: "green",
        }[self]


def format_progress_bar(percent: float, width: int = 10) -> str:
    """
    Format a text progress bar.

    Args:
        percent: Progress 0-100
        width: Character width

    Returns:
        String like "████████░░"
    """
    percent = min(max(percent, 0), 100)
    filled = int(percent / 100 * width)
    empty = width - filled
    return "█" * filled + "░" * empty
