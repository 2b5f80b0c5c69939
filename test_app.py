"""End-to-end tests through the Flask test client with a scripted gateway"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import config
import storage
from llm_gateway import FALLBACK_MESSAGE
from models import Classification, WorkoutPlan
from prompts import WORKOUT_DATA_END, WORKOUT_DATA_START

LEG_DAY_REQUEST = {'userId': 1, 'preferences': 'leg day', 'duration': 20, 'difficulty': 'beginner', 'equipment': ['none']}


# ============================================================================
# Generation
# ============================================================================

def test_generate_workout_saves_classified_plan(make_client, leg_day_reply):
    client, gateway = make_client(leg_day_reply)
    response = client.post('/api/generate-workout', json=LEG_DAY_REQUEST)
    assert response.status_code == 200

    body = response.get_json()
    assert body['success'] is True
    workout = body['workout']
    assert workout['main'][0]['name'] == 'Bodyweight Squats'
    assert workout['targetMuscleGroups'] == ['legs']
    assert workout['estimatedCalories'] == 100
    assert workout['durationMinutes'] == 20
    assert workout['difficulty'] == 'beginner'
    assert workout['autoGenerated'] is True
    assert 'saved to your library' in body['message']
    assert 'evals' not in body

    prompt = gateway._client.messages.calls[0]['messages'][0]['content']
    assert '20' in prompt and 'beginner' in prompt

    saved = client.get('/api/workouts?userId=1').get_json()
    assert [w['id'] for w in saved] == [workout['id']]


def test_generate_workout_miss_is_not_an_error(make_client):
    client, _ = make_client('Leg day sounds fun! How are your knees feeling?')
    response = client.post('/api/generate-workout', json=LEG_DAY_REQUEST)
    assert response.status_code == 200
    body = response.get_json()
    assert body == {'success': False, 'workout': None, 'message': 'Leg day sounds fun! How are your knees feeling?'}
    assert client.get('/api/workouts?userId=1').get_json() == []


def test_generate_workout_with_evals(make_client, leg_day_reply, monkeypatch):
    monkeypatch.setattr(config, 'RUN_EVALS', True)
    client, _ = make_client(leg_day_reply)
    body = client.post('/api/generate-workout', json=LEG_DAY_REQUEST).get_json()
    assert body['evals']['structure']['passed'] is True
    assert body['evals']['instructions']['score_pct'] == 100


def test_generate_workout_unnamed_plan_gets_a_name(make_client, leg_day_plan, marked_reply):
    del leg_day_plan['name']
    client, _ = make_client(marked_reply(leg_day_plan))
    body = client.post('/api/generate-workout', json=LEG_DAY_REQUEST).get_json()
    assert body['workout']['name'] == 'Beginner 20-min Workout'


def test_generate_workout_rejects_bad_user_id(make_client):
    client, _ = make_client()
    response = client.post('/api/generate-workout', json={'userId': 'abc'})
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Invalid request data'


def test_generate_workout_rejects_bad_equipment(make_client):
    client, gateway = make_client()
    response = client.post('/api/generate-workout', json={'duration': 20, 'equipment': 5})
    assert response.status_code == 400
    assert response.get_json()['errors'][0]['loc'] == ['equipment']
    assert gateway._client.messages.calls == []


def test_generate_workout_with_infinite_sets_is_a_miss(make_client):
    reply = (
        f'Try this!\n{WORKOUT_DATA_START}\n'
        '{"name": "X", "main": [{"name": "Squat", "sets": 1e400, "reps": 10}]}\n'
        f'{WORKOUT_DATA_END}'
    )
    client, _ = make_client(reply)
    response = client.post('/api/generate-workout', json=LEG_DAY_REQUEST)
    assert response.status_code == 200
    assert response.get_json() == {'success': False, 'workout': None, 'message': 'Try this!'}
    assert client.get('/api/workouts?userId=1').get_json() == []


def test_request_body_must_be_an_object(make_client):
    client, _ = make_client()
    for path in ('/api/generate-workout', '/api/trainer/message', '/api/workouts'):
        response = client.post(path, json=[1])
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Invalid request data'


# ============================================================================
# Trainer chat
# ============================================================================

def test_conversation_starts_with_welcome(make_client):
    client, _ = make_client()
    body = client.get('/api/trainer/conversation?userId=1').get_json()
    assert body['userId'] == 1
    assert [m['role'] for m in body['messages']] == ['assistant']

    again = client.get('/api/trainer/conversation?userId=1').get_json()
    assert again['id'] == body['id']


def test_chat_workout_request_without_plan(make_client):
    client, _ = make_client('What muscles do you want to hit today?')
    response = client.post('/api/trainer/message', json={'message': 'Can you create a leg workout for me?'})
    assert response.status_code == 200
    body = response.get_json()
    assert body['message'] == 'What muscles do you want to hit today?'
    assert body['workoutGenerated'] is False
    assert 'workoutId' not in body
    assert client.get('/api/workouts').get_json() == []


def test_chat_gateway_timeout_degrades(make_client):
    client, _ = make_client(asyncio.TimeoutError())
    response = client.post('/api/trainer/message', json={'message': 'Create a 20 minute leg workout'})
    assert response.status_code == 200
    body = response.get_json()
    assert body['message'] == FALLBACK_MESSAGE
    assert body['workoutGenerated'] is False
    assert client.get('/api/workouts').get_json() == []


def test_chat_hides_unreadable_workout_block(make_client):
    reply = f'Here you go!\n{WORKOUT_DATA_START}\n{{"name": "Broken", "main": [\n{WORKOUT_DATA_END}'
    client, _ = make_client(reply)
    body = client.post('/api/trainer/message', json={'message': 'Create a leg workout'}).get_json()
    assert body['message'] == 'Here you go!'
    assert body['workoutGenerated'] is False

    conversation = client.get('/api/trainer/conversation').get_json()
    assert WORKOUT_DATA_START not in conversation['messages'][-1]['content']


def test_chat_generates_workout(make_client, leg_day_reply):
    client, gateway = make_client(leg_day_reply)
    body = client.post('/api/trainer/message', json={'message': 'Create a 20 minute easy leg workout'}).get_json()
    assert body['workoutGenerated'] is True
    assert '20-minute beginner' in body['message']

    record = client.get(f"/api/workouts/{body['workoutId']}").get_json()
    assert record['durationMinutes'] == 20
    assert record['difficulty'] == 'beginner'
    assert record['estimatedCalories'] == 100

    prompt = gateway._client.messages.calls[0]['messages'][-1]['content']
    assert '20-minute beginner' in prompt

    conversation = client.get('/api/trainer/conversation').get_json()
    assert conversation['id'] == body['conversationId']
    assert [m['role'] for m in conversation['messages']] == ['user', 'assistant']


def test_chat_sends_recent_history_only(make_client):
    client, gateway = make_client('one', 'two', 'three', 'four', 'five')
    conversation_id = None
    for text in ('Hi there', 'I slept badly', 'What should I eat today?', 'Thanks', 'Any tips for sleep?'):
        body = client.post('/api/trainer/message', json={'message': text, 'conversationId': conversation_id})
        conversation_id = body.get_json()['conversationId']

    last_call = gateway._client.messages.calls[-1]['messages']
    assert len(last_call) == 7
    assert last_call[0] == {'role': 'user', 'content': 'I slept badly'}
    assert last_call[-1] == {'role': 'user', 'content': 'Any tips for sleep?'}

    conversation = client.get('/api/trainer/conversation').get_json()
    assert len(conversation['messages']) == 10


def test_chat_rejects_blank_message(make_client):
    client, _ = make_client()
    for payload in ({}, {'message': ''}, {'message': '   '}):
        response = client.post('/api/trainer/message', json=payload)
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Invalid request data'


def test_exercise_form(make_client):
    client, _ = make_client('Keep your back flat and hinge at the hips.')
    body = client.get('/api/trainer/exercise-form/Romanian%20Deadlift').get_json()
    assert body == {'exercise': 'Romanian Deadlift', 'guidance': 'Keep your back flat and hinge at the hips.'}


# ============================================================================
# Patterns and recommendations
# ============================================================================

def save_tagged(tags, days_ago):
    plan = {'name': 'Tagged', 'main': [{'name': 'Squat', 'sets': 3, 'reps': 10}]}
    classification = Classification(
        tags=tags, target_muscle_groups=tags, estimated_calories=240,
        category='strength-training', intensity='high',
    )
    created_at = datetime.now(timezone.utc) - timedelta(days=days_ago)
    return storage.create_workout(1, WorkoutPlan.model_validate(plan), classification, created_at=created_at)


def test_patterns(make_client):
    client, _ = make_client()
    save_tagged(['legs'], 4)
    save_tagged(['chest'], 2)
    save_tagged(['legs'], 0)

    body = client.get('/api/patterns/1').get_json()
    assert body['favoriteTags'][0] == 'legs'
    assert body['muscleGroupDistribution'] == {'legs': 2, 'chest': 1}
    assert body['workoutFrequencyClass'] == 'regular'
    assert body['totalWorkouts'] == 3


def test_patterns_for_new_user(make_client):
    client, _ = make_client()
    body = client.get('/api/patterns/42').get_json()
    assert body['workoutFrequencyClass'] == 'new-user'
    assert body['muscleGroupDistribution'] == {}


def test_recommendations_without_ai(make_client):
    client, gateway = make_client()
    save_tagged(['legs'], 0)
    body = client.get('/api/recommendations/1?ai=0').get_json()
    assert body['enriched'] is False
    assert body['nextWorkout']['focus'] == ['chest', 'back']
    assert len(body['weeklyPlan']) == 7
    assert gateway._client.messages.calls == []


def test_recommendations_with_ai(make_client):
    reply = json.dumps({
        'recommendation': 'Push day', 'reasoning': 'Legs need rest', 'duration': 40,
        'difficulty': 'advanced', 'focus': ['chest'],
    })
    client, _ = make_client(reply)
    body = client.get('/api/recommendations/1').get_json()
    assert body['enriched'] is True
    assert body['nextWorkout']['recommendation'] == 'Push day'


# ============================================================================
# Library
# ============================================================================

def test_manual_workout_lifecycle(make_client, leg_day_plan):
    client, _ = make_client()
    payload = dict(leg_day_plan, userId=1, durationMinutes=20, difficulty='beginner', preferences='strength')
    response = client.post('/api/workouts', json=payload)
    assert response.status_code == 201
    created = response.get_json()
    assert created['autoGenerated'] is False
    assert 'strength' in created['tags']
    assert created['estimatedCalories'] == 100

    workout_id = created['id']
    assert client.get(f'/api/workouts/{workout_id}').get_json()['name'] == 'Leg Day Basics'

    completed = client.post(f'/api/workouts/{workout_id}/complete').get_json()
    assert completed['analytics']['timesCompleted'] == 1
    assert completed['analytics']['lastCompletedAt'] is not None

    categories = client.get(f'/api/workouts/{workout_id}/categories').get_json()
    assert categories == {
        'primary': 'strength-training',
        'intensity': 'low',
        'equipment': ['bodyweight'],
        'timeOfDay': 'evening',
        'targetAudience': 'beginners',
    }

    assert client.delete(f'/api/workouts/{workout_id}').get_json() == {'success': True}
    response = client.get(f'/api/workouts/{workout_id}')
    assert response.status_code == 404
    assert response.get_json()['success'] is False


def test_manual_workout_must_have_main(make_client):
    client, _ = make_client()
    response = client.post('/api/workouts', json={'name': 'Empty', 'main': []})
    assert response.status_code == 400
    assert client.get('/api/workouts').get_json() == []


def test_manual_workout_with_infinite_sets_is_rejected(make_client):
    client, _ = make_client()
    body = '{"name": "X", "main": [{"name": "Squat", "sets": 1e400, "reps": 10}]}'
    response = client.post('/api/workouts', data=body, content_type='application/json')
    assert response.status_code == 400
    assert client.get('/api/workouts').get_json() == []


def test_update_analytics(make_client, leg_day_plan):
    client, _ = make_client()
    workout_id = client.post('/api/workouts', json=leg_day_plan).get_json()['id']
    client.post(f'/api/workouts/{workout_id}/complete')

    response = client.patch(f'/api/workouts/{workout_id}/analytics', json={'timesCompleted': 5})
    assert response.status_code == 200
    analytics = response.get_json()['analytics']
    assert analytics['timesCompleted'] == 5
    assert analytics['lastCompletedAt'] is not None

    response = client.patch(f'/api/workouts/{workout_id}/analytics', json={'timesCompleted': -1})
    assert response.status_code == 400
    assert client.patch('/api/workouts/999/analytics', json={'timesCompleted': 1}).status_code == 404


def test_library_groups_by_category(make_client, leg_day_plan):
    client, _ = make_client()
    client.post('/api/workouts', json=leg_day_plan)
    client.post('/api/workouts', json={'name': 'Morning Run', 'main': [{'name': 'Easy run', 'durationSeconds': 1200}]})
    client.post('/api/workouts', json={'name': 'Odds and ends', 'main': [{'name': 'Farmer carry', 'sets': 3, 'reps': 1}]})

    library = client.get('/api/library/1').get_json()
    assert sorted(library) == ['cardio', 'general', 'strength-training']
    assert library['strength-training'][0]['name'] == 'Leg Day Basics'


def test_persistence_failure_is_a_500(make_client, monkeypatch):
    client, _ = make_client()

    def broken(*args, **kwargs):
        raise storage.PersistenceError('Failed to loading workouts')

    monkeypatch.setattr(storage, 'list_workouts', broken)
    response = client.get('/api/workouts')
    assert response.status_code == 500
    assert response.get_json()['success'] is False


def test_health(make_client):
    client, _ = make_client()
    assert client.get('/api/health').get_json() == {'status': 'ok', 'database': True}
