"""
Prompt templates for the AI trainer

The workout prompt asks the model to wrap its JSON plan in a marker pair.
The extractor in workout_parser.py looks for exactly these strings, so any
change here needs a new entry in WORKOUT_BLOCK_MARKERS rather than an edit.
"""

import json
from typing import Iterable, Optional

from models import GenerationRequest, UserPatternSummary

WORKOUT_DATA_START = '**WORKOUT_DATA_START**'
WORKOUT_DATA_END = '**WORKOUT_DATA_END**'

# Replies written before the workout markers existed
ROUTINE_DATA_START = '**ROUTINE_DATA_START**'
ROUTINE_DATA_END = '**ROUTINE_DATA_END**'

# Tried in order: current format first, then legacy
WORKOUT_BLOCK_MARKERS = (
    (WORKOUT_DATA_START, WORKOUT_DATA_END),
    (ROUTINE_DATA_START, ROUTINE_DATA_END),
)

TRAINER_SYSTEM_PROMPT = f"""You are a friendly, knowledgeable fitness buddy who can create custom workout routines. You chat casually like a gym friend who knows their stuff.

Your style:
- Casual and friendly tone
- Ask follow-up questions to keep the conversation going
- Give practical, actionable advice
- Be encouraging but realistic
- Avoid giving medical advice
- Keep responses concise (under 200 words) unless you are writing a workout

Only create a full workout when the user asks for one. When you do, end your reply with the workout as JSON between the markers {WORKOUT_DATA_START} and {WORKOUT_DATA_END}."""

WELCOME_MESSAGE = "Hey! Good to see you here. What's going on today?"

_PLAN_SHAPE = {
    "name": "Workout name",
    "description": "Brief description",
    "durationMinutes": 30,
    "difficulty": "intermediate",
    "warmup": [
        {"name": "Exercise name", "durationSeconds": 60, "instructions": "How to perform"}
    ],
    "main": [
        {"name": "Exercise name", "sets": 3, "reps": 12, "restSeconds": 60, "instructions": "How to perform"}
    ],
    "cooldown": [
        {"name": "Exercise name", "durationSeconds": 60, "instructions": "How to perform"}
    ],
}


def describe_equipment(equipment: Iterable[str]) -> str:
    equipment = list(equipment)
    if not equipment:
        return 'none (bodyweight only)'
    return ', '.join(equipment)


def build_workout_prompt(request: GenerationRequest) -> str:
    """
    Turn a generation request into the prompt for the model

    Missing duration/difficulty fall back to 30 minutes / intermediate.
    Equipment is echoed as given.
    """
    duration = request.effective_duration
    difficulty = request.effective_difficulty
    shape = dict(_PLAN_SHAPE, durationMinutes=duration, difficulty=difficulty)

    return f"""Generate a {duration}-minute {difficulty} fitness workout routine.

User preferences: {request.effective_preferences}
Available equipment: {describe_equipment(request.equipment)}
Duration: {duration} minutes
Difficulty: {difficulty}

Your reply MUST contain the workout as a single JSON object placed between these exact markers, each on its own line:
{WORKOUT_DATA_START}
{json.dumps(shape, indent=2)}
{WORKOUT_DATA_END}

Requirements:
- The JSON must have the fields name, description, warmup, main and cooldown
- Every "main" exercise must have "sets" and "reps", or "durationSeconds" for timed exercises
- Every exercise must have an "instructions" string explaining how to perform it
- Use only the available equipment
- Do not put anything except valid JSON between the markers"""


def build_recommendation_prompt(summary: UserPatternSummary, last_muscles: Iterable[str], focus: Iterable[str]) -> str:
    """Ask for a single next-workout suggestion as a small JSON object"""
    favorite = ', '.join(summary.favorite_tags) or 'none yet'
    last = ', '.join(last_muscles) or 'nothing recorded'
    return f"""Based on the user's workout patterns:
- Preferred difficulty: {summary.preferred_difficulty}
- Average duration: {summary.average_duration_minutes} minutes
- Favorite types: {favorite}
- Workout frequency: {summary.workout_frequency_class}
- Last workout targeted: {last}

Recommend the next workout focusing on: {', '.join(focus)}

Return ONLY a JSON object, no other text:
{{
  "recommendation": "specific workout suggestion",
  "reasoning": "why this workout",
  "duration": number of minutes,
  "difficulty": "beginner|intermediate|advanced",
  "focus": ["muscle groups"]
}}"""


def build_form_guidance_prompt(exercise_name: str) -> str:
    return (
        f"Give me detailed form tips for {exercise_name}. Include proper technique, "
        "common mistakes to avoid, and any beginner modifications."
    )


def workout_confirmation(plan, estimated_calories: int, request: Optional[GenerationRequest] = None) -> str:
    """Chat reply after a generated workout was saved to the library"""
    duration = plan.duration_minutes or (request.effective_duration if request else None) or ''
    difficulty = plan.difficulty or (request.effective_difficulty if request else '')
    return f"""I've created a {duration}-minute {difficulty} workout for you! "{plan.name}" has been automatically saved to your library.

Here's what I've prepared:
- Warm-up: {len(plan.warmup)} exercises
- Main workout: {len(plan.main)} exercises
- Cool-down: {len(plan.cooldown)} exercises

Estimated calories burn: {estimated_calories} cal

Would you like me to walk you through the exercises, or would you prefer to start the workout now?"""
