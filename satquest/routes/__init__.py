"""
Routes Package - Flask Blueprints for SAT Quest

Blueprint structure:
- api_bp: progress, practice, achievements, sync (/api)
- leaderboards_bp: global and private leaderboards, preferences (/api)
"""

import logging

from .api import api_bp
from .leaderboards import leaderboards_bp

logger = logging.getLogger(__name__)


def register_all_blueprints(app):
    """
    Register all Flask blueprints with the application.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(api_bp)
    logger.info("Registered API blueprint (progress routes)")

    app.register_blueprint(leaderboards_bp)
    logger.info("Registered leaderboard blueprint")


__all__ = ["register_all_blueprints", "api_bp", "leaderboards_bp"]
