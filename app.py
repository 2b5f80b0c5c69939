#!/usr/bin/env python3
"""
AI Fitness Coach - API
Workout generation, the workout library and the AI trainer chat
"""

import logging
import os
import secrets

from flask import Flask, jsonify, request
from pydantic import ValidationError
from werkzeug.exceptions import BadRequest
from werkzeug.middleware.proxy_fix import ProxyFix

import config
import pipeline
import storage
from classifier import categorize_workout
from database import check_db_connection, init_db
from llm_gateway import LLMGateway
from models import GenerationRequest, MessageRequest, WorkoutAnalytics, WorkoutPlan
from prompts import workout_confirmation

logger = logging.getLogger(__name__)


def resolve_user_id(value=None):
    """userId from a query string or body; the demo account when absent"""
    if value is None or value == '':
        return config.DEMO_USER_ID
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadRequest('userId must be an integer')


def request_data():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequest('Request body must be a JSON object')
    return data


def create_app(gateway=None):
    """Build the Flask app; tests pass a gateway with a scripted client"""
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    app = Flask(__name__)
    # Hosted deployments sit behind a proxy and set DATABASE_URL
    if 'postgres' in os.getenv('DATABASE_URL', '').lower():
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=1)
    app.secret_key = os.getenv('SECRET_KEY', secrets.token_hex(32))

    gateway = gateway or LLMGateway()
    app.extensions['llm_gateway'] = gateway

    init_db()

    # ========================================================================
    # Error handling
    # ========================================================================

    @app.errorhandler(ValidationError)
    def invalid_request(e):
        errors = [{'loc': list(err['loc']), 'msg': err['msg'], 'type': err['type']} for err in e.errors()]
        return jsonify({'message': 'Invalid request data', 'errors': errors}), 400

    @app.errorhandler(BadRequest)
    def bad_request(e):
        return jsonify({'message': 'Invalid request data', 'errors': [e.description]}), 400

    @app.errorhandler(storage.WorkoutNotFound)
    def workout_not_found(e):
        return jsonify({'success': False, 'error': str(e)}), 404

    @app.errorhandler(storage.PersistenceError)
    def persistence_error(e):
        return jsonify({'success': False, 'error': str(e)}), 500

    # ========================================================================
    # Workout generation
    # ========================================================================

    @app.route('/api/generate-workout', methods=['POST'])
    async def generate_workout():
        """Generate a workout from explicit parameters and save it to the library"""
        data = request_data()
        user_id = resolve_user_id(data.get('userId'))
        generation = GenerationRequest.model_validate(data)

        outcome = await pipeline.generate_workout(user_id, generation, gateway)
        if outcome.record is None:
            # No plan in the reply: report it, but the request itself worked
            return jsonify({'success': False, 'workout': None, 'message': outcome.reply})

        body = {
            'success': True,
            'workout': outcome.record.to_json(),
            'message': workout_confirmation(outcome.record, outcome.record.estimated_calories, generation),
        }
        if outcome.evals is not None:
            body['evals'] = outcome.evals
        return jsonify(body)

    # ========================================================================
    # Trainer chat
    # ========================================================================

    @app.route('/api/trainer/conversation', methods=['GET'])
    def get_conversation():
        user_id = resolve_user_id(request.args.get('userId'))
        return jsonify(pipeline.get_or_create_conversation(user_id).to_json())

    @app.route('/api/trainer/message', methods=['POST'])
    async def send_message():
        message = MessageRequest.model_validate(request_data())
        user_id = message.user_id or config.DEMO_USER_ID
        response = await pipeline.handle_trainer_message(
            user_id, message.message, gateway, conversation_id=message.conversation_id
        )
        return jsonify(response)

    @app.route('/api/trainer/exercise-form/<path:exercise_name>', methods=['GET'])
    async def exercise_form(exercise_name):
        guidance = await pipeline.exercise_form_guidance(exercise_name, gateway)
        return jsonify({'exercise': exercise_name, 'guidance': guidance})

    # ========================================================================
    # Patterns and recommendations
    # ========================================================================

    @app.route('/api/patterns/<int:user_id>', methods=['GET'])
    def get_patterns(user_id):
        return jsonify(pipeline.patterns_for_user(user_id).to_json())

    @app.route('/api/recommendations/<int:user_id>', methods=['GET'])
    async def get_recommendations(user_id):
        """?ai=0 skips the model and returns the rotation-based suggestion"""
        use_ai = request.args.get('ai', '1').lower() not in ('0', 'false', 'no')
        recommendation = await pipeline.recommendations_for_user(user_id, gateway if use_ai else None)
        return jsonify(recommendation.to_json())

    # ========================================================================
    # Workout library
    # ========================================================================

    @app.route('/api/workouts', methods=['GET'])
    def list_workouts():
        user_id = resolve_user_id(request.args.get('userId'))
        return jsonify([record.to_json() for record in storage.list_workouts(user_id)])

    @app.route('/api/workouts', methods=['POST'])
    def save_workout():
        """Save a workout the user wrote themselves"""
        data = request_data()
        user_id = resolve_user_id(data.get('userId'))
        plan = WorkoutPlan.model_validate(data)
        record = pipeline.save_manual_workout(
            user_id, plan, preferences=data.get('preferences') or '', equipment=data.get('equipment') or ()
        )
        return jsonify(record.to_json()), 201

    @app.route('/api/workouts/<int:workout_id>', methods=['GET'])
    def get_workout(workout_id):
        return jsonify(storage.get_workout(workout_id).to_json())

    @app.route('/api/workouts/<int:workout_id>', methods=['DELETE'])
    def delete_workout(workout_id):
        storage.delete_workout(workout_id)
        return jsonify({'success': True})

    @app.route('/api/workouts/<int:workout_id>/complete', methods=['POST'])
    def complete_workout(workout_id):
        return jsonify(storage.record_completion(workout_id).to_json())

    @app.route('/api/workouts/<int:workout_id>/analytics', methods=['PATCH'])
    def update_analytics(workout_id):
        """Set completion stats directly; only the fields sent are changed"""
        changes = WorkoutAnalytics.model_validate(request_data())
        current = storage.get_workout(workout_id).analytics
        analytics = current.model_copy(update=changes.model_dump(include=changes.model_fields_set))
        return jsonify(storage.update_workout_analytics(workout_id, analytics).to_json())

    @app.route('/api/workouts/<int:workout_id>/categories', methods=['GET'])
    def workout_categories(workout_id):
        return jsonify(categorize_workout(storage.get_workout(workout_id)).to_json())

    @app.route('/api/library/<int:user_id>', methods=['GET'])
    def get_library(user_id):
        library = pipeline.library_for_user(user_id)
        return jsonify({
            category: [record.to_json() for record in records]
            for category, records in library.items()
        })

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({'status': 'ok', 'database': check_db_connection()})

    return app


if __name__ == '__main__':
    app = create_app()
    port = int(os.getenv('PORT', '5001'))
    logger.info("Starting server on http://localhost:%s", port)
    app.run(debug=True, host='0.0.0.0', port=port)
