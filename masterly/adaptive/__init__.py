"""
Adaptive Learning Engine.

Mastery-gated concept unlocking and prerequisite-ordered learning paths.

Components:
- UnlockResolver: Decides which concepts a user may access
- MasteryPolicy: Best-score and running-average scoring
- ProgressStateMachine: Applies progress events with the anti-cheat reset
- PathSequencer: Orders course concepts by prerequisites
- RouteGenerator: Recommended route plus alternates
- ProgressAggregator: Course completion rollups
- TopicRecommender: Cheapest prerequisite chain towards a goal concept

The orchestration layer, masterly.adaptive.learning_engine.LearningEngine,
depends on the stores in masterly.db and is imported from its module.
"""
from masterly.adaptive.models import (
    BlockingPrerequisite,
    DecoratedConcept,
    MasteryOutcome,
    MasteryUnlockResult,
    ProgressUpdate,
    Route,
    RouteName,
    SequencedPath,
    TopicPath,
    TopicPathStep,
    TopicRecommendation,
    UnlockStatus,
)
from masterly.adaptive.mastery_policies import (
    BEST_SCORE,
    RUNNING_AVERAGE,
    BestScorePolicy,
    MasteryPolicy,
    RunningAveragePolicy,
    build_policies,
)
from masterly.adaptive.path_sequencer import PathSequencer
from masterly.adaptive.progress_aggregator import ProgressAggregator
from masterly.adaptive.progress_state import ProgressAction, ProgressStateMachine
from masterly.adaptive.route_generator import RouteGenerator
from masterly.adaptive.topic_recommender import TopicRecommender
from masterly.adaptive.unlock_resolver import UnlockResolver, merge_ledger, newly_unlocked

__all__ = [
    # Component classes
    "UnlockResolver",
    "MasteryPolicy",
    "BestScorePolicy",
    "RunningAveragePolicy",
    "ProgressStateMachine",
    "PathSequencer",
    "RouteGenerator",
    "ProgressAggregator",
    "TopicRecommender",
    # Functions and constants
    "build_policies",
    "merge_ledger",
    "newly_unlocked",
    "BEST_SCORE",
    "RUNNING_AVERAGE",
    "ProgressAction",
    # Data models
    "BlockingPrerequisite",
    "DecoratedConcept",
    "MasteryOutcome",
    "MasteryUnlockResult",
    "ProgressUpdate",
    "Route",
    "RouteName",
    "SequencedPath",
    "TopicPath",
    "TopicPathStep",
    "TopicRecommendation",
    "UnlockStatus",
]
