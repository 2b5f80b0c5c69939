#!/usr/bin/env python3
"""
Workout Parser
Pulls the structured workout plan out of a free-form model reply

Wire format: a begin marker, one JSON object, an end marker. Marker pairs are
tried in the order given by prompts.WORKOUT_BLOCK_MARKERS. No markers, or
invalid JSON between them, means the model answered conversationally and the
result is None - that is a normal outcome, not an error.
"""

import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from models import WorkoutPlan
from prompts import WORKOUT_BLOCK_MARKERS

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r'^\s*```[a-zA-Z]*\s*\n?(.*?)\n?\s*```\s*$', re.DOTALL)


def find_marked_block(raw_text: str) -> Optional[Tuple[int, int, str]]:
    """
    Locate the first complete marker pair

    Returns (block_start, block_end, inner_text) where the offsets span the
    markers themselves, or None when no pair is complete.
    """
    if not raw_text:
        return None
    for start_marker, end_marker in WORKOUT_BLOCK_MARKERS:
        start = raw_text.find(start_marker)
        if start == -1:
            continue
        inner_start = start + len(start_marker)
        end = raw_text.find(end_marker, inner_start)
        if end == -1:
            continue
        return start, end + len(end_marker), raw_text[inner_start:end].strip()
    return None


def strip_code_fences(text: str) -> str:
    """Models like to wrap JSON in ```json fences even when told not to"""
    match = _CODE_FENCE.match(text)
    return match.group(1).strip() if match else text.strip()


def extract_block(raw_text: str) -> Optional[Any]:
    """Parse the JSON between the markers; None if absent or unparseable"""
    found = find_marked_block(raw_text)
    if found is None:
        return None
    payload = strip_code_fences(found[2])
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        logger.warning("Workout block is not valid JSON (%s); treating reply as conversational", e)
        return None


def strip_marked_block(raw_text: str) -> str:
    """The reply with the marker block cut out, for showing in the chat"""
    found = find_marked_block(raw_text)
    if found is None:
        return raw_text
    start, end, _ = found
    return (raw_text[:start] + raw_text[end:]).strip()


def flatten_routine(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert the legacy multi-day routine shape into a single plan

    {"name", "description", "days": [{"exercises": [...], "duration": 45}]}
    becomes a plan whose main block holds every day's exercises in order.
    """
    days = data.get('days') or []
    main = []
    for day in days:
        if isinstance(day, dict):
            main.extend(day.get('exercises') or [])
    flattened = {key: value for key, value in data.items() if key != 'days'}
    flattened['main'] = main
    if 'duration' not in flattened and days and isinstance(days[0], dict):
        flattened['duration'] = days[0].get('duration')
    return flattened


def extract(raw_text: str) -> Optional[WorkoutPlan]:
    """
    Extract a typed workout plan from a model reply

    Returns None when the markers are missing, the JSON is invalid, or the
    payload does not describe a usable plan (no main block, main exercises
    without sets/reps or duration). Never raises.
    """
    data = extract_block(raw_text)
    if data is None:
        return None
    if not isinstance(data, dict):
        logger.warning("Workout block is %s, expected a JSON object", type(data).__name__)
        return None
    if 'main' not in data and 'days' in data:
        data = flatten_routine(data)
    try:
        return WorkoutPlan.model_validate(data)
    except ValidationError as e:
        logger.warning("Workout block failed validation: %s", e.errors(include_url=False))
        return None


def parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Parse a reply that should be a bare JSON object

    Accepts fenced JSON and replies with chatter around the object
    (first '{' to last '}'). Returns None when nothing parses to a dict.
    """
    if not text:
        return None
    candidates = [strip_code_fences(text)]
    first, last = text.find('{'), text.rfind('}')
    if first != -1 and last > first:
        candidates.append(text[first:last + 1])
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None
