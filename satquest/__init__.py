"""
SAT Quest - Application Factory

Gamified SAT practice: XP, day streaks, achievements and leaderboards.
Progress lives on the device and is mirrored to a remote profile store.
"""

import atexit
import logging
import threading
from typing import Optional

from flask import Flask
from flask_cors import CORS

from satquest.config import Config, get_config
from satquest.gamification import GamificationEngine
from satquest.identity import DeviceIdentity
from satquest.leaderboard import LeaderboardService
from satquest.questions import QuestionBank
from satquest.storage import RemoteProfileStore, SQLiteProgressStore, get_remote_store
from satquest.sync import ProfileSyncer

logger = logging.getLogger(__name__)

__version__ = "0.4.0"


def load_question_bank(config: Config) -> QuestionBank:
    """Load the configured question file, or an empty bank if none is set."""
    path = config.questions_path
    if path is None:
        logger.info("No question file configured")
        return QuestionBank()
    return QuestionBank.from_yaml(path)


def build_engine(
    config: Config,
    remote_store: RemoteProfileStore,
    question_bank: Optional[QuestionBank] = None,
) -> GamificationEngine:
    """
    Wire a GamificationEngine from configuration.

    Local progress goes to SQLite; remote writes are debounced through a
    ProfileSyncer keyed by the anonymous device id.
    """
    local_store = SQLiteProgressStore(config.local_db_path)
    syncer = ProfileSyncer(
        remote_store,
        DeviceIdentity(config.device_id_path),
        debounce_seconds=config.sync_debounce_seconds,
        max_retries=config.remote_max_retries,
    )
    return GamificationEngine(
        local_store,
        syncer=syncer,
        question_source=question_bank if question_bank else None,
        daily_quota=config.daily_quota,
        xp_per_correct=config.xp_per_correct,
        xp_per_attempt=config.xp_per_attempt,
    )


def create_app(
    config_path=None,
    engine: Optional[GamificationEngine] = None,
    leaderboards: Optional[LeaderboardService] = None,
    question_bank: Optional[QuestionBank] = None,
):
    """
    Application factory for creating Flask app instances.

    Args:
        config_path: Optional path to config.yaml file
        engine: Pre-built engine (tests); built from config if None
        leaderboards: Pre-built leaderboard service; built from config if None
        question_bank: Pre-loaded questions; loaded from config if None

    Returns:
        Configured Flask application instance
    """
    from dotenv import load_dotenv

    load_dotenv()

    config = get_config(config_path)

    if question_bank is None:
        question_bank = load_question_bank(config)

    remote_store = None
    if engine is None or leaderboards is None:
        remote_store = get_remote_store(config.to_dict())
        logger.info(f"Using remote profile store: {remote_store.store_name}")

    if engine is None:
        engine = build_engine(config, remote_store, question_bank)
        atexit.register(engine.shutdown)

    if leaderboards is None:
        leaderboards = LeaderboardService(
            remote_store, tie_break=config.tie_break, max_members=config.max_members
        )

    engine.initialize()

    app = Flask(__name__)
    CORS(app)

    app.config["SATQUEST_CONFIG"] = config
    app.config["SATQUEST_ENGINE"] = engine
    app.config["SATQUEST_ENGINE_LOCK"] = threading.Lock()
    app.config["SATQUEST_LEADERBOARDS"] = leaderboards
    app.config["SATQUEST_QUESTIONS"] = question_bank

    register_blueprints(app)

    return app


def register_blueprints(app):
    """Register all Flask blueprints."""
    from satquest.routes import register_all_blueprints

    register_all_blueprints(app)
