"""
Value objects for workout generation, the workout library and the trainer chat

Everything serializes to camelCase for the front end and accepts either
camelCase or snake_case on the way in.
"""

import math
import re
from datetime import datetime
from typing import Dict, List, Literal, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

DIFFICULTIES = ('beginner', 'intermediate', 'advanced')
DEFAULT_DIFFICULTY = 'intermediate'
DEFAULT_DURATION_MINUTES = 30
DEFAULT_PREFERENCES = 'general fitness'

FrequencyClass = Literal['daily', 'regular', 'weekly', 'occasional', 'new-user']

_TIME_UNIT_PATTERN = re.compile(r'(\d+(?:\.\d+)?)\s*(seconds?|secs?|s\b|minutes?|mins?|m\b)', re.IGNORECASE)


def _whole(value) -> Optional[int]:
    # json.loads turns 1e400 into inf
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)


def _leading_int(value) -> Optional[int]:
    """Pull a whole number out of loose model output: 3, "3", "3-4 sets" -> 3"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _whole(value)
    match = re.search(r'\d+', str(value))
    return int(match.group(0)) if match else None


def parse_seconds(value) -> Optional[int]:
    """
    Parse a duration into seconds

    Bare numbers are already seconds; text may name its unit:
    "45", "30 seconds", "30s", "1 min", "2 minutes"
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _whole(value)
    text = str(value).strip()
    match = _TIME_UNIT_PATTERN.search(text)
    if match:
        amount = float(match.group(1))
        if match.group(2).lower().startswith('m'):
            amount *= 60
        if not math.isfinite(amount):
            return None
        return int(round(amount))
    return _leading_int(text)


def mentions_time(text: str) -> bool:
    return bool(_TIME_UNIT_PATTERN.search(text or ''))


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode='json', by_alias=True)


# ============================================================================
# Generation input
# ============================================================================

class GenerationRequest(CamelModel):
    """One user action asking for a workout. Not persisted on its own."""
    model_config = ConfigDict(frozen=True)

    preferences: str = ''
    duration_minutes: Optional[int] = Field(
        None,
        validation_alias=AliasChoices('durationMinutes', 'duration_minutes', 'duration'),
        serialization_alias='durationMinutes',
    )
    difficulty: Optional[str] = None
    equipment: Tuple[str, ...] = ()

    @field_validator('preferences', mode='before')
    @classmethod
    def _preferences_text(cls, value):
        if value is None:
            return ''
        if isinstance(value, (list, tuple, set)):
            return ', '.join(str(v) for v in value)
        return str(value)

    @field_validator('duration_minutes', mode='before')
    @classmethod
    def _duration(cls, value):
        minutes = _leading_int(value)
        return minutes if minutes and minutes > 0 else None

    @field_validator('difficulty', mode='before')
    @classmethod
    def _difficulty(cls, value):
        if value is None:
            return None
        value = str(value).strip().lower()
        return value or None

    @field_validator('equipment', mode='before')
    @classmethod
    def _equipment(cls, value):
        if value is None:
            return ()
        if isinstance(value, str):
            value = value.split(',')
        elif not isinstance(value, (list, tuple, set)):
            raise ValueError('equipment must be a list or comma-separated string')
        seen = []
        for item in value:
            item = str(item).strip().lower()
            if item and item not in seen:
                seen.append(item)
        return tuple(seen)

    @property
    def effective_duration(self) -> int:
        return self.duration_minutes or DEFAULT_DURATION_MINUTES

    @property
    def effective_difficulty(self) -> str:
        return self.difficulty or DEFAULT_DIFFICULTY

    @property
    def effective_preferences(self) -> str:
        return self.preferences.strip() or DEFAULT_PREFERENCES


# ============================================================================
# Workout plans and records
# ============================================================================

class ExerciseStep(CamelModel):
    model_config = ConfigDict(frozen=True)

    name: str
    sets: Optional[int] = None
    reps: Optional[Union[int, str]] = None
    duration_seconds: Optional[int] = Field(
        None,
        validation_alias=AliasChoices('durationSeconds', 'duration_seconds', 'duration'),
        serialization_alias='durationSeconds',
    )
    rest_seconds: Optional[int] = Field(
        None,
        validation_alias=AliasChoices('restSeconds', 'rest_seconds', 'rest'),
        serialization_alias='restSeconds',
    )
    instructions: str = Field(
        '',
        validation_alias=AliasChoices('instructions', 'notes'),
        serialization_alias='instructions',
    )

    @model_validator(mode='before')
    @classmethod
    def _timed_reps(cls, data):
        # "reps": "30 seconds" on a step with no duration means a timed hold
        if isinstance(data, dict):
            has_duration = any(data.get(key) is not None for key in ('durationSeconds', 'duration_seconds', 'duration'))
            reps = data.get('reps')
            if not has_duration and isinstance(reps, str) and mentions_time(reps):
                data = dict(data)
                data['durationSeconds'] = parse_seconds(reps)
        return data

    @field_validator('sets', mode='before')
    @classmethod
    def _sets(cls, value):
        return _leading_int(value)

    @field_validator('reps', mode='before')
    @classmethod
    def _reps(cls, value):
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, float):
            return _whole(value)
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
            if value.isdigit():
                return int(value)
        return value

    @field_validator('duration_seconds', 'rest_seconds', mode='before')
    @classmethod
    def _seconds(cls, value):
        return parse_seconds(value)

    @field_validator('instructions', mode='before')
    @classmethod
    def _instructions(cls, value):
        return '' if value is None else str(value)

    @property
    def has_volume(self) -> bool:
        """A main-block exercise needs sets+reps or a duration"""
        return (self.sets is not None and self.reps is not None) or self.duration_seconds is not None


class WorkoutPlan(CamelModel):
    """Warmup / main / cooldown routine. Immutable; edits create a new plan."""
    model_config = ConfigDict(frozen=True)

    name: str = ''
    description: str = ''
    duration_minutes: Optional[int] = Field(
        None,
        validation_alias=AliasChoices('durationMinutes', 'duration_minutes', 'duration'),
        serialization_alias='durationMinutes',
    )
    difficulty: Optional[str] = None
    warmup: List[ExerciseStep] = []
    main: List[ExerciseStep]
    cooldown: List[ExerciseStep] = []

    @field_validator('name', 'description', mode='before')
    @classmethod
    def _text(cls, value):
        return '' if value is None else str(value)

    @field_validator('duration_minutes', mode='before')
    @classmethod
    def _duration(cls, value):
        minutes = _leading_int(value)
        return minutes if minutes and minutes > 0 else None

    @field_validator('difficulty', mode='before')
    @classmethod
    def _difficulty(cls, value):
        if value is None:
            return None
        return str(value).strip().lower() or None

    @field_validator('warmup', 'cooldown', mode='before')
    @classmethod
    def _optional_block(cls, value):
        return [] if value is None else value

    @model_validator(mode='after')
    def _main_has_volume(self):
        if not self.main:
            raise ValueError('plan has no main exercises')
        missing = [step.name for step in self.main if not step.has_volume]
        if missing:
            raise ValueError(f"main exercises without sets/reps or duration: {', '.join(missing)}")
        return self

    @property
    def steps(self) -> List[ExerciseStep]:
        return [*self.warmup, *self.main, *self.cooldown]


class WorkoutAnalytics(CamelModel):
    times_completed: int = Field(0, ge=0)
    last_completed_at: Optional[datetime] = None


class WorkoutRecord(WorkoutPlan):
    """A saved plan plus its metadata. Only `analytics` changes after creation."""

    id: int
    user_id: int
    created_at: datetime
    tags: List[str] = []
    target_muscle_groups: List[str] = []
    estimated_calories: int = 0
    auto_generated: bool = False
    analytics: WorkoutAnalytics = Field(default_factory=WorkoutAnalytics)


# ============================================================================
# Classifier and analyzer output
# ============================================================================

class Classification(CamelModel):
    tags: List[str]
    target_muscle_groups: List[str]
    estimated_calories: int
    category: str
    intensity: str


class WorkoutCategories(CamelModel):
    primary: str
    intensity: str
    equipment: List[str]
    time_of_day: str
    target_audience: str


class UserPatternSummary(CamelModel):
    preferred_difficulty: str = DEFAULT_DIFFICULTY
    average_duration_minutes: int = DEFAULT_DURATION_MINUTES
    favorite_tags: List[str] = []
    workout_frequency_class: FrequencyClass = 'new-user'
    muscle_group_distribution: Dict[str, int] = {}
    total_workouts: int = 0


class NextWorkout(CamelModel):
    recommendation: str
    reasoning: str = ''
    duration: int = Field(gt=0)
    difficulty: str
    focus: List[str] = []

    @field_validator('difficulty')
    @classmethod
    def _known_difficulty(cls, value):
        value = value.strip().lower()
        if value not in DIFFICULTIES:
            raise ValueError(f'unknown difficulty: {value}')
        return value


class WeeklyPlanEntry(CamelModel):
    day: str
    type: str
    duration: int
    difficulty: Optional[str] = None


class ImprovementArea(CamelModel):
    area: str
    message: str
    suggestion: str


class Recommendation(CamelModel):
    next_workout: NextWorkout
    weekly_plan: List[WeeklyPlanEntry]
    improvement_areas: List[ImprovementArea] = []
    enriched: bool = False


# ============================================================================
# Trainer chat
# ============================================================================

class MessageEntry(CamelModel):
    role: Literal['user', 'assistant', 'system']
    content: str
    timestamp: str


class Conversation(CamelModel):
    id: int
    user_id: int
    messages: List[MessageEntry] = []
    created_at: datetime
    updated_at: datetime


class MessageRequest(CamelModel):
    message: str = Field(min_length=1)
    conversation_id: Optional[int] = None
    user_id: Optional[int] = None

    @field_validator('message')
    @classmethod
    def _not_blank(cls, value):
        if not value.strip():
            raise ValueError('message must not be blank')
        return value
