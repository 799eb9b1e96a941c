"""
API Routes Blueprint - progress, practice and achievements

All engine mutations go through ENGINE_LOCK so concurrent requests never
interleave a read-modify-write of the user's progress.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from satquest.errors import ErrorKind
from satquest.models import OperationResult

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CAPACITY: 409,
    ErrorKind.REMOTE: 502,
    ErrorKind.REMOTE_SYNC: 502,
}


def get_engine():
    return current_app.config["SATQUEST_ENGINE"]


def get_engine_lock():
    return current_app.config["SATQUEST_ENGINE_LOCK"]


def get_question_bank():
    return current_app.config["SATQUEST_QUESTIONS"]


def error_response(message, status):
    return jsonify({"error": message}), status


def request_json():
    """The JSON request body as a dict; {} when absent, None when not an object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


def result_response(result: OperationResult, success_status=200):
    """Serialize an OperationResult with a status code derived from its error kind."""
    if result.success:
        return jsonify(result.to_dict()), success_status
    return jsonify(result.to_dict()), STATUS_BY_KIND.get(result.error_kind, 500)


@api_bp.route("/health")
def health():
    from satquest.startup import get_health_status

    status = get_health_status(current_app.config["SATQUEST_CONFIG"], get_engine())
    return jsonify(status), 200 if status["status"] == "healthy" else 503


@api_bp.route("/progress")
def get_progress():
    return jsonify(get_engine().get_progress().to_dict())


@api_bp.route("/stats")
def get_stats():
    return jsonify(get_engine().get_stats())


@api_bp.route("/practice", methods=["POST"])
def record_practice():
    """
    Record one answered question.

    Body, either:
        {"question_id": "q1", "answer": 2}   graded against the question bank
        {"is_correct": true, "question_id": "q1"}   already graded by the client
    """
    data = request_json()
    if data is None:
        return error_response("Request body must be a JSON object", 400)
    question_id = data.get("question_id")
    question = None

    if "answer" in data:
        if question_id is None:
            return error_response("question_id is required when sending an answer", 400)
        question = get_question_bank().get(str(question_id))
        if question is None:
            return error_response("Question not found", 404)
        try:
            is_correct = question.is_correct(int(data["answer"]))
        except (TypeError, ValueError):
            return error_response("answer must be an option index", 400)
    elif isinstance(data.get("is_correct"), bool):
        is_correct = data["is_correct"]
    else:
        return error_response("Either answer or is_correct is required", 400)

    with get_engine_lock():
        result = get_engine().record_practice(is_correct, question_id)

    payload = result.to_dict()
    payload["is_correct"] = is_correct
    if question is not None:
        payload["correct_answer"] = question.correct_answer
        payload["explanation"] = question.explanation
    return jsonify(payload)


@api_bp.route("/bonus-xp", methods=["POST"])
def add_bonus_xp():
    data = request_json()
    if data is None:
        return error_response("Request body must be a JSON object", 400)
    try:
        with get_engine_lock():
            result = get_engine().add_bonus_xp(data.get("amount"))
    except ValueError as e:
        return error_response(str(e), 400)
    return jsonify(result.to_dict())


@api_bp.route("/achievements")
def get_achievements():
    achievements = get_engine().get_achievements()
    return jsonify({"achievements": [a.to_dict() for a in achievements]})


@api_bp.route("/achievements/<achievement_id>/collect", methods=["POST"])
def collect_achievement(achievement_id):
    with get_engine_lock():
        result = get_engine().collect_achievement_xp(achievement_id)
    return jsonify(result.to_dict())


@api_bp.route("/sync/flush", methods=["POST"])
def flush_sync():
    synced = get_engine().flush()
    return jsonify({"synced": synced}), 200 if synced else 502


@api_bp.route("/questions/next")
def next_question():
    """First question not yet answered correctly, optionally within a category."""
    category = request.args.get("category")
    answered = get_engine().get_answered_question_ids()

    for question in get_question_bank().unanswered(answered):
        if category and question.category != category:
            continue
        return jsonify({"question": question.to_dict()})

    return error_response("No unanswered questions left", 404)
