"""
Leaderboard Routes Blueprint

The requesting user comes from the X-User-Id header, set by the auth layer
in front of this service.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from satquest.models import LeaderboardMetric
from satquest.routes.api import error_response, request_json, result_response

logger = logging.getLogger(__name__)

leaderboards_bp = Blueprint("leaderboards", __name__, url_prefix="/api")

USER_HEADER = "X-User-Id"
MAX_PAGE_SIZE = 500


def get_leaderboards():
    return current_app.config["SATQUEST_LEADERBOARDS"]


def current_user_id():
    return (request.headers.get(USER_HEADER) or "").strip() or None


def parse_metric():
    return LeaderboardMetric.parse(request.args.get("metric", "xp"))


@leaderboards_bp.errorhandler(ValueError)
def handle_bad_parameter(e):
    return error_response(str(e), 400)


@leaderboards_bp.before_request
def require_user():
    """Everything but the public global board needs a signed-in user."""
    if request.endpoint == "leaderboards.global_leaderboard":
        return None
    if current_user_id() is None:
        return error_response(f"{USER_HEADER} header is required", 401)
    return None


# ===== Global =====


@leaderboards_bp.route("/leaderboards/global")
def global_leaderboard():
    config = current_app.config["SATQUEST_CONFIG"]
    limit = min(int(request.args.get("limit", config.page_size)), MAX_PAGE_SIZE)
    offset = int(request.args.get("offset", 0))
    entries = get_leaderboards().get_global_leaderboard(parse_metric(), limit, offset)
    return jsonify({"entries": [e.to_dict() for e in entries]})


@leaderboards_bp.route("/leaderboards/global/rank")
def global_rank():
    window = get_leaderboards().get_user_global_rank(current_user_id(), parse_metric())
    return jsonify(window.to_dict())


# ===== Private =====


@leaderboards_bp.route("/leaderboards/private", methods=["GET"])
def list_private_leaderboards():
    leaderboards = get_leaderboards().get_private_leaderboards_for_user(current_user_id())
    return jsonify({"leaderboards": [lb.to_dict() for lb in leaderboards]})


@leaderboards_bp.route("/leaderboards/private", methods=["POST"])
def create_private_leaderboard():
    data = request_json()
    if data is None:
        return error_response("Request body must be a JSON object", 400)
    result = get_leaderboards().create_private_leaderboard(
        data.get("name"), data.get("description"), current_user_id()
    )
    return result_response(result, success_status=201)


@leaderboards_bp.route("/leaderboards/private/<leaderboard_id>", methods=["DELETE"])
def delete_private_leaderboard(leaderboard_id):
    result = get_leaderboards().delete_private_leaderboard(leaderboard_id, current_user_id())
    return result_response(result)


@leaderboards_bp.route("/leaderboards/private/<leaderboard_id>/members", methods=["GET"])
def list_members(leaderboard_id):
    members = get_leaderboards().get_private_leaderboard_members(leaderboard_id, parse_metric())
    return jsonify({"members": [m.to_dict() for m in members]})


@leaderboards_bp.route("/leaderboards/private/<leaderboard_id>/members", methods=["POST"])
def add_member(leaderboard_id):
    data = request_json()
    if data is None:
        return error_response("Request body must be a JSON object", 400)
    result = get_leaderboards().add_member_to_leaderboard(
        leaderboard_id, data.get("username"), current_user_id()
    )
    return result_response(result, success_status=201)


@leaderboards_bp.route(
    "/leaderboards/private/<leaderboard_id>/members/<user_id>", methods=["DELETE"]
)
def remove_member(leaderboard_id, user_id):
    result = get_leaderboards().remove_member_from_leaderboard(
        leaderboard_id, user_id, current_user_id()
    )
    return result_response(result)


@leaderboards_bp.route("/leaderboards/private/<leaderboard_id>/rank")
def private_rank(leaderboard_id):
    window = get_leaderboards().get_user_rank_in_private_leaderboard(
        leaderboard_id, current_user_id(), parse_metric()
    )
    return jsonify(window.to_dict())


@leaderboards_bp.route("/leaderboards/private/<leaderboard_id>/transfer", methods=["POST"])
def transfer_ownership(leaderboard_id):
    data = request_json()
    if data is None:
        return error_response("Request body must be a JSON object", 400)
    new_owner_id = data.get("new_owner_id")
    if not new_owner_id:
        return error_response("new_owner_id is required", 400)
    result = get_leaderboards().transfer_ownership(leaderboard_id, new_owner_id, current_user_id())
    return result_response(result)


# ===== Preferences =====


@leaderboards_bp.route("/preferences", methods=["GET"])
def get_preferences():
    preferences = get_leaderboards().get_user_preferences(current_user_id())
    if preferences is None:
        return error_response("Could not load preferences", 502)
    return jsonify(preferences.to_dict())


@leaderboards_bp.route("/preferences", methods=["PATCH"])
def update_preferences():
    data = request_json()
    if data is None:
        return error_response("Request body must be a JSON object", 400)
    result = get_leaderboards().update_user_preferences(
        current_user_id(),
        block_leaderboard_invites=data.get("block_leaderboard_invites"),
        hide_from_global_leaderboard=data.get("hide_from_global_leaderboard"),
    )
    return result_response(result)
