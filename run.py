#!/usr/bin/env python3
"""
SAT Quest - Main Entry Point

Uses the application factory pattern via satquest.create_app().

Usage:
    python run.py

Environment Variables:
    SATQUEST_ENV: development (default), production, testing
    SATQUEST_CONFIG: path to config.yaml (optional)
    LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (optional)
    PORT: HTTP port (default 5000)
"""

import os
import sys
from pathlib import Path

APP_DIR = Path(__file__).parent

# Load environment variables from .env file
from dotenv import load_dotenv

load_dotenv(APP_DIR / ".env")

# Initialize logging first
from satquest.logging_config import get_logger, setup_logging

satquest_env = os.environ.get("SATQUEST_ENV", "development")
log_level = os.environ.get("LOG_LEVEL")
json_logs = satquest_env == "production"

setup_logging(level=log_level, json_logs=json_logs)
logger = get_logger(__name__)


def main():
    """Main entry point for SAT Quest."""

    logger.info("=" * 60)
    logger.info("SAT Quest - Starting Up")
    logger.info("=" * 60)

    from satquest.startup import run_startup_validation

    logger.info("Running startup validation...")
    validation_passed, results = run_startup_validation(
        strict=False, log_results=True  # Allow warnings in development
    )

    if not validation_passed:
        logger.error("Startup validation failed. Please fix the errors above.")
        sys.exit(1)

    from satquest import create_app

    app = create_app()

    config = app.config["SATQUEST_CONFIG"]
    engine = app.config["SATQUEST_ENGINE"]
    progress = engine.get_progress()
    port = int(os.environ.get("PORT", 5000))

    logger.info("")
    logger.info("=" * 60)
    logger.info("  SAT Quest")
    logger.info("=" * 60)
    logger.info(f"  Environment: {satquest_env}")
    logger.info(f"  Configuration: {config.config_path}")
    logger.info(f"  Progress database: {config.local_db_path}")
    logger.info(f"  Remote store: {config.remote_backend}")
    logger.info(f"  Questions loaded: {len(app.config['SATQUEST_QUESTIONS'])}")
    logger.info("")
    logger.info(f"  Total XP: {progress.total_xp}")
    logger.info(f"  Day streak: {progress.day_streak}")
    logger.info("")
    logger.info(f"  API: http://localhost:{port}/api")
    logger.info(f"  Health Check: http://localhost:{port}/api/health")
    logger.info("=" * 60)
    logger.info("")

    debug_mode = satquest_env != "production"
    # The reloader would start a second engine with its own sync timer
    app.run(debug=debug_mode, use_reloader=False, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
