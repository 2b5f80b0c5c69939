"""
Heuristic workout classifier
Tags, target muscle groups, calorie estimate and library category for a plan

Pure keyword matching over the plan's text. The tables below are the whole
behaviour: change a table, and every saved workout classified afterwards
changes with it.
"""

from typing import Dict, List, Optional, Tuple

from models import (
    DEFAULT_DIFFICULTY,
    DEFAULT_DURATION_MINUTES,
    Classification,
    GenerationRequest,
    WorkoutCategories,
    WorkoutPlan,
)

# ============================================================================
# Keyword tables
# ============================================================================

CALORIES_PER_MINUTE: Dict[str, int] = {
    'beginner': 5,
    'intermediate': 8,
    'advanced': 11,
}

# Tag added when the word appears in the user's preferences
PREFERENCE_TAGS: Tuple[str, ...] = ('cardio', 'strength', 'flexibility', 'hiit')

# Tag added when any keyword appears in the plan text
PLAN_TAG_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    'legs': ('squat', 'lunge'),
    'upper-body': ('push', 'press'),
    'core': ('plank', 'core'),
}

MUSCLE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    'chest': ('push-up', 'bench', 'fly', 'chest'),
    'back': ('pull-up', 'row', 'lat', 'back'),
    'legs': ('squat', 'lunge', 'leg', 'calf', 'quad', 'hamstring'),
    'shoulders': ('shoulder', 'overhead', 'lateral', 'delt'),
    'arms': ('bicep', 'tricep', 'curl', 'arm'),
    'core': ('plank', 'crunch', 'abs', 'core', 'oblique'),
    'glutes': ('glute', 'hip', 'bridge'),
}

# (category, keywords, needs every keyword) - first match wins
CATEGORY_FAMILIES: Tuple[Tuple[str, Tuple[str, ...], bool], ...] = (
    ('strength-training', ('squat', 'deadlift'), False),
    ('cardio', ('run', 'jump'), False),
    ('flexibility', ('yoga', 'stretch'), False),
    ('hiit', ('burpee', 'sprint'), True),
)
DEFAULT_CATEGORY = 'general'

EQUIPMENT_KEYWORDS: Dict[str, str] = {
    'dumbbell': 'dumbbells',
    'barbell': 'barbell',
    'resistance band': 'bands',
    'kettlebell': 'kettlebell',
    'pull-up bar': 'pull-up-bar',
    'mat': 'yoga-mat',
}

REST_KEYWORD = 'rest'
LOW_INTENSITY_REST_RATIO = 0.8
HIGH_INTENSITY_REST_RATIO = 0.3


# ============================================================================
# Plan text
# ============================================================================

def render_plan_text(plan: WorkoutPlan) -> str:
    """
    Lowercase text the keyword tables are matched against

    Built from field values only, so JSON keys like "warmup" never produce
    matches ("arm" would otherwise tag every plan).
    """
    lines = [plan.name, plan.description]
    for step in plan.steps:
        parts = [step.name]
        if step.sets is not None:
            parts.append(f"{step.sets} sets")
        if step.reps is not None:
            parts.append(f"{step.reps} reps")
        if step.duration_seconds is not None:
            parts.append(f"{step.duration_seconds}s")
        if step.rest_seconds is not None:
            parts.append(f"{REST_KEYWORD} {step.rest_seconds}s")
        if step.instructions:
            parts.append(step.instructions)
        lines.append(' '.join(parts))
    return '\n'.join(line for line in lines if line).lower()


def _matches_any(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


# ============================================================================
# Individual heuristics
# ============================================================================

def calculate_calories(duration_minutes: int, difficulty: Optional[str]) -> int:
    """duration * rate; unknown difficulty uses the intermediate rate"""
    rate = CALORIES_PER_MINUTE.get((difficulty or '').lower(), CALORIES_PER_MINUTE[DEFAULT_DIFFICULTY])
    return int(round(duration_minutes * rate))


def extract_muscle_groups(plan_text: str) -> List[str]:
    return [muscle for muscle, keywords in MUSCLE_KEYWORDS.items() if _matches_any(plan_text, keywords)]


def generate_tags(plan_text: str, preferences: str, difficulty: str, duration_minutes: int,
                  equipment=()) -> List[str]:
    tags = [difficulty.lower(), f"{duration_minutes}min"]
    tags.extend(item for item in equipment if item and item != 'none')

    preferences = (preferences or '').lower()
    tags.extend(tag for tag in PREFERENCE_TAGS if tag in preferences)
    tags.extend(tag for tag, keywords in PLAN_TAG_KEYWORDS.items() if _matches_any(plan_text, keywords))

    # dedupe, first occurrence wins
    return list(dict.fromkeys(tags))


def primary_category(plan_text: str) -> str:
    for category, keywords, needs_all in CATEGORY_FAMILIES:
        matched = all(k in plan_text for k in keywords) if needs_all else _matches_any(plan_text, keywords)
        if matched:
            return category
    return DEFAULT_CATEGORY


def intensity_level(plan_text: str, main_count: int) -> str:
    rest_mentions = plan_text.count(REST_KEYWORD)
    if rest_mentions > main_count * LOW_INTENSITY_REST_RATIO:
        return 'low'
    if rest_mentions < main_count * HIGH_INTENSITY_REST_RATIO:
        return 'high'
    return 'moderate'


def detect_equipment(plan_text: str) -> List[str]:
    found = [equipment for keyword, equipment in EQUIPMENT_KEYWORDS.items() if keyword in plan_text]
    return found or ['bodyweight']


# ============================================================================
# Entry points
# ============================================================================

def classify(plan: WorkoutPlan, request: GenerationRequest) -> Classification:
    """
    Attach library metadata to a plan

    The request's duration and difficulty win over whatever the model wrote
    into the plan. Never fails; the worst case is a sparse result.
    """
    duration = request.duration_minutes or plan.duration_minutes or DEFAULT_DURATION_MINUTES
    difficulty = request.difficulty or plan.difficulty or DEFAULT_DIFFICULTY
    text = render_plan_text(plan)

    return Classification(
        tags=generate_tags(text, request.preferences, difficulty, duration, request.equipment),
        target_muscle_groups=extract_muscle_groups(text),
        estimated_calories=calculate_calories(duration, difficulty),
        category=primary_category(text),
        intensity=intensity_level(text, len(plan.main)),
    )


def categorize_workout(plan: WorkoutPlan) -> WorkoutCategories:
    """Full categorization for the library organization view"""
    text = render_plan_text(plan)
    primary = primary_category(text)
    intensity = intensity_level(text, len(plan.main))

    if intensity == 'low':
        time_of_day = 'evening'
    elif primary == 'hiit' or intensity == 'high':
        time_of_day = 'morning'
    else:
        time_of_day = 'anytime'

    difficulty = plan.difficulty or DEFAULT_DIFFICULTY
    if difficulty == 'beginner' and intensity == 'low':
        audience = 'beginners'
    elif difficulty == 'advanced' and intensity == 'high':
        audience = 'athletes'
    else:
        audience = 'intermediate'

    return WorkoutCategories(
        primary=primary,
        intensity=intensity,
        equipment=detect_equipment(text),
        time_of_day=time_of_day,
        target_audience=audience,
    )
