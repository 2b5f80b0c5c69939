"""
Workout pattern analysis
Summarizes one user's saved workouts: preferred difficulty, average length,
favourite tags, how often they train and which muscle groups they hit.
Recomputed on every request; nothing here is stored.
"""

from collections import Counter
from typing import Dict, List, Sequence

from models import DEFAULT_DIFFICULTY, DEFAULT_DURATION_MINUTES, UserPatternSummary, WorkoutRecord

FAVORITE_TAG_COUNT = 3

# Upper bounds (exclusive) on the mean gap between workouts, in days
FREQUENCY_BUCKETS = (
    (2, 'daily'),
    (4, 'regular'),
    (8, 'weekly'),
)


def most_common_difficulty(records: Sequence[WorkoutRecord]) -> str:
    counts = Counter(r.difficulty for r in records if r.difficulty)
    if not counts:
        return DEFAULT_DIFFICULTY
    return counts.most_common(1)[0][0]


def average_duration(records: Sequence[WorkoutRecord]) -> int:
    if not records:
        return DEFAULT_DURATION_MINUTES
    total = sum(r.duration_minutes or DEFAULT_DURATION_MINUTES for r in records)
    return int(round(total / len(records))) or DEFAULT_DURATION_MINUTES


def favorite_tags(records: Sequence[WorkoutRecord], limit: int = FAVORITE_TAG_COUNT) -> List[str]:
    """Top tags by count; ties keep the order tags were first seen (newest record first)"""
    counts = Counter()
    for record in records:
        counts.update(record.tags)
    return [tag for tag, _ in counts.most_common(limit)]


def mean_gap_days(records: Sequence[WorkoutRecord]) -> float:
    dates = sorted((r.created_at for r in records), reverse=True)
    gaps = [(newer - older).total_seconds() / 86400 for newer, older in zip(dates, dates[1:])]
    return sum(gaps) / len(gaps)


def frequency_class(records: Sequence[WorkoutRecord]) -> str:
    if len(records) < 2:
        return 'new-user'
    gap = mean_gap_days(records)
    for upper_bound, label in FREQUENCY_BUCKETS:
        if gap < upper_bound:
            return label
    return 'occasional'


def muscle_group_distribution(records: Sequence[WorkoutRecord]) -> Dict[str, int]:
    """Number of workouts touching each muscle group (not exercise counts)"""
    distribution: Dict[str, int] = {}
    for record in records:
        for muscle in dict.fromkeys(record.target_muscle_groups):
            distribution[muscle] = distribution.get(muscle, 0) + 1
    return distribution


def analyze(history: Sequence[WorkoutRecord]) -> UserPatternSummary:
    """
    Build the pattern summary for one user

    `history` is that user's records, most recent first.
    """
    return UserPatternSummary(
        preferred_difficulty=most_common_difficulty(history),
        average_duration_minutes=average_duration(history),
        favorite_tags=favorite_tags(history),
        workout_frequency_class=frequency_class(history),
        muscle_group_distribution=muscle_group_distribution(history),
        total_workouts=len(history),
    )
