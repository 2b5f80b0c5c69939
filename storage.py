"""
Storage for workout records and trainer conversations

Every query is scoped and parameterized; rows come back as pydantic models.
Driver failures surface as PersistenceError so the HTTP layer can answer 500.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional

from database import DB_ERRORS, get_cursor, get_db_connection, get_db_url, is_sqlite, placeholder
from models import Classification, Conversation, MessageEntry, WorkoutAnalytics, WorkoutPlan, WorkoutRecord

logger = logging.getLogger(__name__)

WORKOUT_COLUMNS = """id, user_id, name, description, duration_minutes, difficulty, exercises,
    tags, target_muscle_groups, estimated_calories, auto_generated,
    times_completed, last_completed_at, created_at"""

CONVERSATION_COLUMNS = "id, user_id, messages, created_at, updated_at"


class PersistenceError(Exception):
    """A read or write against the workout store failed"""


class WorkoutNotFound(PersistenceError):
    """No workout with that id (for that user)"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='microseconds')


@contextmanager
def _cursor(action: str):
    """Cursor inside a committed transaction; driver errors become PersistenceError"""
    try:
        with get_db_connection() as conn:
            yield get_cursor(conn)
    except DB_ERRORS as e:
        logger.error("Error %s: %s", action, e)
        raise PersistenceError(f"Failed to {action}") from e


def _sql(query: str) -> str:
    # Queries are written with %s; SQLite wants ?
    return query.replace('%s', placeholder())


def _insert(cur, sql: str, params) -> int:
    """Run an INSERT and return the new row id"""
    if is_sqlite(get_db_url()):
        cur.execute(_sql(sql), params)
        return cur.lastrowid
    cur.execute(sql + " RETURNING id", params)
    return cur.fetchone()[0]


# ============================================================================
# Workouts
# ============================================================================

def _row_to_record(row) -> WorkoutRecord:
    exercises = json.loads(row[6])
    return WorkoutRecord.model_validate({
        'id': row[0],
        'user_id': row[1],
        'name': row[2],
        'description': row[3] or '',
        'duration_minutes': row[4],
        'difficulty': row[5],
        'warmup': exercises.get('warmup', []),
        'main': exercises.get('main', []),
        'cooldown': exercises.get('cooldown', []),
        'tags': json.loads(row[7]),
        'target_muscle_groups': json.loads(row[8]),
        'estimated_calories': row[9],
        'auto_generated': bool(row[10]),
        'analytics': {'times_completed': row[11], 'last_completed_at': row[12]},
        'created_at': row[13],
    })


def create_workout(user_id: int, plan: WorkoutPlan, classification: Classification,
                   auto_generated: bool = False, created_at: Optional[datetime] = None) -> WorkoutRecord:
    """Persist a classified plan and return the stored record"""
    exercises = plan.model_dump(mode='json', by_alias=True, include={'warmup', 'main', 'cooldown'})
    params = (
        int(user_id),
        plan.name,
        plan.description,
        plan.duration_minutes,
        plan.difficulty,
        json.dumps(exercises),
        json.dumps(classification.tags),
        json.dumps(classification.target_muscle_groups),
        classification.estimated_calories,
        bool(auto_generated),
        _timestamp(created_at or utcnow()),
    )
    with _cursor('saving workout') as cur:
        workout_id = _insert(cur, """
            INSERT INTO workouts (user_id, name, description, duration_minutes, difficulty, exercises,
                                  tags, target_muscle_groups, estimated_calories, auto_generated, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """, params)
    logger.info("Saved workout %s for user %s", workout_id, user_id)
    return get_workout(workout_id)


def list_workouts(user_id: int, limit: Optional[int] = None) -> List[WorkoutRecord]:
    """A user's workouts, most recent first"""
    query = f"SELECT {WORKOUT_COLUMNS} FROM workouts WHERE user_id = %s ORDER BY created_at DESC, id DESC"
    params = [int(user_id)]
    if limit:
        query += " LIMIT %s"
        params.append(int(limit))
    with _cursor('loading workouts') as cur:
        cur.execute(_sql(query), tuple(params))
        rows = cur.fetchall()
    return [_row_to_record(row) for row in rows]


def get_workout(workout_id: int, user_id: Optional[int] = None) -> WorkoutRecord:
    query = f"SELECT {WORKOUT_COLUMNS} FROM workouts WHERE id = %s"
    params = [int(workout_id)]
    if user_id is not None:
        query += " AND user_id = %s"
        params.append(int(user_id))
    with _cursor('loading workout') as cur:
        cur.execute(_sql(query), tuple(params))
        row = cur.fetchone()
    if row is None:
        raise WorkoutNotFound(f"Workout {workout_id} not found")
    return _row_to_record(row)


def update_workout_analytics(workout_id: int, analytics: WorkoutAnalytics) -> WorkoutRecord:
    """Replace the analytics block; the plan itself is never rewritten"""
    with _cursor('updating workout') as cur:
        cur.execute(_sql("""
            UPDATE workouts SET times_completed = %s, last_completed_at = %s WHERE id = %s
        """), (analytics.times_completed, _timestamp(analytics.last_completed_at), int(workout_id)))
        updated = cur.rowcount
    if not updated:
        raise WorkoutNotFound(f"Workout {workout_id} not found")
    return get_workout(workout_id)


def record_completion(workout_id: int, completed_at: Optional[datetime] = None) -> WorkoutRecord:
    """Count one completion; the increment happens in the database so concurrent completions add up"""
    with _cursor('recording completion') as cur:
        cur.execute(_sql("""
            UPDATE workouts
            SET times_completed = times_completed + 1, last_completed_at = %s
            WHERE id = %s
        """), (_timestamp(completed_at or utcnow()), int(workout_id)))
        updated = cur.rowcount
    if not updated:
        raise WorkoutNotFound(f"Workout {workout_id} not found")
    return get_workout(workout_id)


def delete_workout(workout_id: int, user_id: Optional[int] = None) -> None:
    query = "DELETE FROM workouts WHERE id = %s"
    params = [int(workout_id)]
    if user_id is not None:
        query += " AND user_id = %s"
        params.append(int(user_id))
    with _cursor('deleting workout') as cur:
        cur.execute(_sql(query), tuple(params))
        deleted = cur.rowcount
    if not deleted:
        raise WorkoutNotFound(f"Workout {workout_id} not found")
    logger.info("Deleted workout %s", workout_id)


# ============================================================================
# Conversations
# ============================================================================

def _row_to_conversation(row) -> Conversation:
    return Conversation.model_validate({
        'id': row[0],
        'user_id': row[1],
        'messages': json.loads(row[2]),
        'created_at': row[3],
        'updated_at': row[4],
    })


def get_conversation(conversation_id: int, user_id: Optional[int] = None) -> Optional[Conversation]:
    query = f"SELECT {CONVERSATION_COLUMNS} FROM conversations WHERE id = %s"
    params = [int(conversation_id)]
    if user_id is not None:
        query += " AND user_id = %s"
        params.append(int(user_id))
    with _cursor('loading conversation') as cur:
        cur.execute(_sql(query), tuple(params))
        row = cur.fetchone()
    return _row_to_conversation(row) if row else None


def get_latest_conversation(user_id: int) -> Optional[Conversation]:
    with _cursor('loading conversation') as cur:
        cur.execute(_sql(f"""
            SELECT {CONVERSATION_COLUMNS} FROM conversations
            WHERE user_id = %s
            ORDER BY updated_at DESC, id DESC
            LIMIT 1
        """), (int(user_id),))
        row = cur.fetchone()
    return _row_to_conversation(row) if row else None


def _dump_messages(messages: List[MessageEntry]) -> str:
    return json.dumps([m.to_json() for m in messages])


def create_conversation(user_id: int, messages: List[MessageEntry]) -> Conversation:
    now = _timestamp(utcnow())
    with _cursor('creating conversation') as cur:
        conversation_id = _insert(cur, """
            INSERT INTO conversations (user_id, messages, created_at, updated_at)
            VALUES (%s, %s, %s, %s)
        """, (int(user_id), _dump_messages(messages), now, now))
    return get_conversation(conversation_id)


def update_conversation(conversation_id: int, messages: List[MessageEntry]) -> Conversation:
    with _cursor('updating conversation') as cur:
        cur.execute(_sql("""
            UPDATE conversations SET messages = %s, updated_at = %s WHERE id = %s
        """), (_dump_messages(messages), _timestamp(utcnow()), int(conversation_id)))
        updated = cur.rowcount
    if not updated:
        raise PersistenceError(f"Conversation {conversation_id} not found")
    return get_conversation(conversation_id)
