"""
Shared fixtures: a throwaway SQLite database, a gateway with a scripted
client (no network) and a Flask test client built on both.
"""

import copy
import json
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from database import init_db
from llm_gateway import LLMGateway
from models import WorkoutPlan, WorkoutRecord
from prompts import WORKOUT_DATA_END, WORKOUT_DATA_START

LEG_DAY_PLAN = {
    "name": "Leg Day Basics",
    "description": "Simple lower body session",
    "warmup": [
        {"name": "March in Place", "durationSeconds": 60, "instructions": "Lift knees to a steady rhythm"}
    ],
    "main": [
        {"name": "Bodyweight Squats", "sets": 2, "reps": 15, "restSeconds": 45,
         "instructions": "Sit down until thighs are level"}
    ],
    "cooldown": [
        {"name": "Standing Quad Stretch", "durationSeconds": 60, "instructions": "Hold each side"}
    ],
}


class ScriptedMessages:
    """Stands in for `client.messages`: hands out replies in order, raises any exception given"""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def create(self, **request):
        self.calls.append(request)
        reply = self.replies.pop(0) if self.replies else ''
        if isinstance(reply, BaseException):
            raise reply
        return SimpleNamespace(
            content=[SimpleNamespace(type='text', text=reply)],
            usage=SimpleNamespace(input_tokens=12, output_tokens=34),
        )


class ScriptedClient:
    def __init__(self, replies):
        self.messages = ScriptedMessages(replies)


def marked(plan, text="Here's your workout!"):
    return f"{text}\n\n{WORKOUT_DATA_START}\n{json.dumps(plan)}\n{WORKOUT_DATA_END}"


@pytest.fixture
def leg_day_plan():
    return copy.deepcopy(LEG_DAY_PLAN)


@pytest.fixture
def leg_day_reply(leg_day_plan):
    return marked(leg_day_plan)


@pytest.fixture
def marked_reply():
    return marked


@pytest.fixture
def make_gateway():
    def _make(*replies):
        return LLMGateway(api_key='test-key', client=ScriptedClient(replies), timeout=5)
    return _make


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'fitness_test.db'}"
    monkeypatch.setenv('DATABASE_URL', url)
    monkeypatch.delenv('POSTGRES_URL', raising=False)
    init_db()
    return url


@pytest.fixture
def make_client(db_url, make_gateway):
    """make_client(*replies) -> (test client, gateway)"""
    from app import create_app

    def _make(*replies):
        gateway = make_gateway(*replies)
        app = create_app(gateway)
        app.config['TESTING'] = True
        return app.test_client(), gateway
    return _make


@pytest.fixture
def make_record():
    """Build an unsaved WorkoutRecord for analyzer/recommender tests"""
    counter = iter(range(1, 1000))

    def _make(created_at=None, tags=(), muscles=(), difficulty='intermediate', duration=30):
        return WorkoutRecord(
            id=next(counter),
            user_id=1,
            created_at=created_at or datetime(2024, 6, 1, tzinfo=timezone.utc),
            name='Workout',
            duration_minutes=duration,
            difficulty=difficulty,
            main=[{'name': 'Squat', 'sets': 3, 'reps': 10}],
            tags=list(tags),
            target_muscle_groups=list(muscles),
        )
    return _make


@pytest.fixture
def leg_day(leg_day_plan):
    return WorkoutPlan.model_validate(leg_day_plan)
