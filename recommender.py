"""
Workout recommendations
Next-workout suggestion, a 7-day plan skeleton and improvement areas, built
from a user's pattern summary and their most recent workout.
"""

import logging
from typing import List, Optional

from pydantic import ValidationError

from llm_gateway import GenerationUnavailable
from models import (
    DEFAULT_DIFFICULTY,
    DIFFICULTIES,
    ImprovementArea,
    NextWorkout,
    Recommendation,
    UserPatternSummary,
    WeeklyPlanEntry,
    WorkoutRecord,
)
from prompts import build_recommendation_prompt
from workout_parser import parse_json_object

logger = logging.getLogger(__name__)

# Rotation used to pick the next focus
ROTATION_MUSCLE_GROUPS = ('chest', 'back', 'legs', 'shoulders', 'arms', 'core')

WEEK_DAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')
DEFAULT_WORKOUT_TYPES = ('strength', 'cardio', 'flexibility')
REST_DAY_EVERY = 3

NEGLECTED_SHARE_PCT = 10


def available_muscle_groups(last_record: Optional[WorkoutRecord]) -> List[str]:
    """Rotation groups the last workout did not hit (all of them if it hit every one)"""
    last = set(last_record.target_muscle_groups) if last_record else set()
    available = [muscle for muscle in ROTATION_MUSCLE_GROUPS if muscle not in last]
    return available or list(ROTATION_MUSCLE_GROUPS)


def fallback_next_workout(summary: UserPatternSummary, available: List[str]) -> NextWorkout:
    difficulty = summary.preferred_difficulty
    if difficulty not in DIFFICULTIES:
        difficulty = DEFAULT_DIFFICULTY
    return NextWorkout(
        recommendation=f"{summary.average_duration_minutes}-minute {available[0]} workout",
        reasoning='Muscle group rotation for optimal recovery',
        duration=summary.average_duration_minutes,
        difficulty=difficulty,
        focus=available[:2],
    )


def generate_weekly_plan(summary: UserPatternSummary) -> List[WeeklyPlanEntry]:
    """Every third day is rest; the rest rotate through favourite tags"""
    workout_types = summary.favorite_tags or list(DEFAULT_WORKOUT_TYPES)
    plan = []
    for index, day in enumerate(WEEK_DAYS):
        if index % REST_DAY_EVERY == REST_DAY_EVERY - 1:
            plan.append(WeeklyPlanEntry(day=day, type='rest', duration=0))
        else:
            plan.append(WeeklyPlanEntry(
                day=day,
                type=workout_types[index % len(workout_types)],
                duration=summary.average_duration_minutes,
                difficulty=summary.preferred_difficulty,
            ))
    return plan


def identify_improvement_areas(summary: UserPatternSummary) -> List[ImprovementArea]:
    areas = []
    distribution = summary.muscle_group_distribution
    total = sum(distribution.values())
    for muscle, count in distribution.items():
        if count / total * 100 < NEGLECTED_SHARE_PCT:
            areas.append(ImprovementArea(
                area=muscle,
                message=f"You've been neglecting {muscle} workouts",
                suggestion=f"Add more {muscle}-focused exercises",
            ))

    if summary.workout_frequency_class == 'occasional':
        areas.append(ImprovementArea(
            area='consistency',
            message='Your workout frequency could be improved',
            suggestion='Try to maintain a more regular schedule',
        ))
    return areas


async def enrich_next_workout(gateway, summary: UserPatternSummary, last_record: Optional[WorkoutRecord],
                              available: List[str]) -> Optional[NextWorkout]:
    """Ask the model for a personalised suggestion; None on any failure"""
    last_muscles = last_record.target_muscle_groups if last_record else []
    prompt = build_recommendation_prompt(summary, last_muscles, available)
    try:
        reply = await gateway.generate(prompt, max_tokens=300)
    except GenerationUnavailable as e:
        logger.warning("AI recommendation unavailable, using rotation: %s", e)
        return None

    data = parse_json_object(reply)
    if data is None:
        logger.warning("AI recommendation was not a JSON object, using rotation")
        return None
    try:
        return NextWorkout.model_validate(data)
    except ValidationError as e:
        logger.warning("AI recommendation had the wrong shape, using rotation: %s", e.errors(include_url=False))
        return None


async def recommend(summary: UserPatternSummary, last_record: Optional[WorkoutRecord],
                    gateway=None) -> Recommendation:
    """
    Compose the recommendation

    Without a gateway (or when enrichment fails) the next workout is the
    deterministic rotation pick; enrichment never makes this call fail.
    """
    available = available_muscle_groups(last_record)
    next_workout = fallback_next_workout(summary, available)
    enriched = False

    if gateway is not None:
        suggestion = await enrich_next_workout(gateway, summary, last_record, available)
        if suggestion is not None:
            next_workout = suggestion
            enriched = True

    return Recommendation(
        next_workout=next_workout,
        weekly_plan=generate_weekly_plan(summary),
        improvement_areas=identify_improvement_areas(summary),
        enriched=enriched,
    )
