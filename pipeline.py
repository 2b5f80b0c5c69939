"""
Workout generation pipeline and trainer chat

prompt -> gateway -> extractor -> classifier -> storage. Every step but the
last degrades instead of failing: no reply means the fallback text, no plan
means a conversational reply, and the classifier always returns something.
Only storage errors reach the caller.
"""

import logging
import re
from collections import defaultdict
from typing import Dict, List, NamedTuple, Optional

import config
import storage
from classifier import categorize_workout, classify
from evals import log_eval_results, run_evals
from llm_gateway import FALLBACK_MESSAGE
from models import (
    DEFAULT_DIFFICULTY,
    DEFAULT_DURATION_MINUTES,
    DEFAULT_PREFERENCES,
    Conversation,
    GenerationRequest,
    MessageEntry,
    Recommendation,
    UserPatternSummary,
    WorkoutPlan,
    WorkoutRecord,
)
from pattern_analyzer import analyze
from prompts import (
    TRAINER_SYSTEM_PROMPT,
    WELCOME_MESSAGE,
    build_form_guidance_prompt,
    build_workout_prompt,
    workout_confirmation,
)
from recommender import recommend
from workout_parser import extract, strip_marked_block

logger = logging.getLogger(__name__)

# ============================================================================
# Reading a chat message as a generation request
# ============================================================================

WORKOUT_REQUEST_PATTERN = re.compile(
    r'create|generate|make|design|give me|build|suggest.*workout|routine|exercise|training',
    re.IGNORECASE,
)
DURATION_PATTERN = re.compile(r'(\d+)\s*(?:minute|min)', re.IGNORECASE)

DIFFICULTY_KEYWORDS = (
    ('beginner', ('beginner', 'easy', 'simple')),
    ('advanced', ('advanced', 'hard', 'challenging')),
)

PREFERENCE_KEYWORDS = (
    ('cardio', ('cardio',)),
    ('strength', ('strength',)),
    ('flexibility', ('flexibility', 'stretch')),
    ('hiit', ('hiit',)),
    ('yoga', ('yoga',)),
)

# Turns of earlier conversation sent along with a chat message
HISTORY_TURNS = 6

# Records fed to the pattern analyzer
PATTERN_HISTORY_LIMIT = 50


def is_workout_request(message: str) -> bool:
    return bool(WORKOUT_REQUEST_PATTERN.search(message or ''))


def extract_duration(message: str) -> int:
    match = DURATION_PATTERN.search(message or '')
    return int(match.group(1)) if match else DEFAULT_DURATION_MINUTES


def extract_difficulty(message: str) -> str:
    text = (message or '').lower()
    for difficulty, keywords in DIFFICULTY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return difficulty
    return DEFAULT_DIFFICULTY


def extract_preferences(message: str) -> str:
    text = (message or '').lower()
    found = [label for label, keywords in PREFERENCE_KEYWORDS if any(k in text for k in keywords)]
    return ', '.join(found) or DEFAULT_PREFERENCES


def request_from_message(message: str) -> GenerationRequest:
    return GenerationRequest(
        preferences=extract_preferences(message),
        duration_minutes=extract_duration(message),
        difficulty=extract_difficulty(message),
    )


# ============================================================================
# Generation
# ============================================================================

class GenerationOutcome(NamedTuple):
    reply: str
    record: Optional[WorkoutRecord] = None
    evals: Optional[dict] = None


def finalize_plan(plan: WorkoutPlan, request: GenerationRequest) -> WorkoutPlan:
    """The requested duration/difficulty win over what the model wrote; unnamed plans get a name"""
    duration = request.duration_minutes or plan.duration_minutes or DEFAULT_DURATION_MINUTES
    difficulty = request.difficulty or plan.difficulty or DEFAULT_DIFFICULTY
    name = plan.name.strip() or f"{difficulty.title()} {duration}-min Workout"
    return plan.model_copy(update={'name': name, 'duration_minutes': duration, 'difficulty': difficulty})


async def generate_workout(user_id: int, request: GenerationRequest, gateway) -> GenerationOutcome:
    """
    Run one generation request end to end

    Returns the reply and, when a plan was extracted, the saved record. A
    reply whose marker block could not be read comes back without the block.
    Raises storage.PersistenceError if the record cannot be written.
    """
    reply = await gateway.complete(build_workout_prompt(request), system=TRAINER_SYSTEM_PROMPT)

    plan = extract(reply)
    if plan is None:
        logger.info("No workout plan in reply for user %s; answering conversationally", user_id)
        # a broken block is not shown to the user
        return GenerationOutcome(reply=strip_marked_block(reply) or FALLBACK_MESSAGE)

    plan = finalize_plan(plan, request)
    classification = classify(plan, request)
    record = storage.create_workout(user_id, plan, classification, auto_generated=True)

    evals = None
    if config.RUN_EVALS:
        evals = run_evals(plan, request)
        log_eval_results(evals)

    return GenerationOutcome(reply=reply, record=record, evals=evals)


def save_manual_workout(user_id: int, plan: WorkoutPlan, preferences: str = '', equipment=()) -> WorkoutRecord:
    """Classify and store a plan the user entered themselves"""
    request = GenerationRequest(
        preferences=preferences,
        duration_minutes=plan.duration_minutes,
        difficulty=plan.difficulty,
        equipment=equipment,
    )
    plan = finalize_plan(plan, request)
    return storage.create_workout(user_id, plan, classify(plan, request), auto_generated=False)


# ============================================================================
# Trainer chat
# ============================================================================

def _turn(role: str, content: str) -> MessageEntry:
    return MessageEntry(role=role, content=content, timestamp=storage.utcnow().isoformat())


def get_or_create_conversation(user_id: int) -> Conversation:
    """Latest conversation, or a new one opening with the welcome message"""
    conversation = storage.get_latest_conversation(user_id)
    if conversation is None:
        conversation = storage.create_conversation(user_id, [_turn('assistant', WELCOME_MESSAGE)])
    return conversation


async def handle_trainer_message(user_id: int, message: str, gateway,
                                 conversation_id: Optional[int] = None) -> dict:
    """
    Answer one chat message and store both turns

    Workout requests go through generate_workout; a missed extraction is
    answered with the model's own text and no record is saved.
    """
    conversation = None
    if conversation_id is not None:
        conversation = storage.get_conversation(conversation_id, user_id)
    if conversation is None:
        conversation = storage.create_conversation(user_id, [])

    history = conversation.messages
    response = {'workoutGenerated': False}

    if is_workout_request(message):
        request = request_from_message(message)
        outcome = await generate_workout(user_id, request, gateway)
        if outcome.record is not None:
            reply = workout_confirmation(outcome.record, outcome.record.estimated_calories, request)
            response.update(workoutGenerated=True, workoutId=outcome.record.id)
        else:
            reply = outcome.reply
    else:
        reply = await gateway.complete(message, system=TRAINER_SYSTEM_PROMPT, history=history[-HISTORY_TURNS:])

    storage.update_conversation(conversation.id, [*history, _turn('user', message), _turn('assistant', reply)])
    response.update(message=reply, conversationId=conversation.id)
    return response


async def exercise_form_guidance(exercise_name: str, gateway) -> str:
    return await gateway.complete(build_form_guidance_prompt(exercise_name), system=TRAINER_SYSTEM_PROMPT)


# ============================================================================
# Patterns, recommendations, library
# ============================================================================

def patterns_for_user(user_id: int) -> UserPatternSummary:
    return analyze(storage.list_workouts(user_id, limit=PATTERN_HISTORY_LIMIT))


async def recommendations_for_user(user_id: int, gateway=None) -> Recommendation:
    history = storage.list_workouts(user_id, limit=PATTERN_HISTORY_LIMIT)
    last_record = history[0] if history else None
    return await recommend(analyze(history), last_record, gateway)


def library_for_user(user_id: int) -> Dict[str, List[WorkoutRecord]]:
    """A user's workouts grouped by primary category, most recent first within each"""
    library = defaultdict(list)
    for record in storage.list_workouts(user_id):
        library[categorize_workout(record).primary].append(record)
    return dict(library)
