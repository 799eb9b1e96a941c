"""
Startup validation and health checks for SAT Quest.

Validates configuration, local storage and the remote backend before
the application starts.
"""

import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from satquest.logging_config import get_logger

logger = get_logger(__name__)


class ValidationResult:
    """Result of a validation check."""

    def __init__(
        self,
        name: str,
        passed: bool,
        message: str,
        severity: str = "error",  # error, warning, info
        fix_hint: Optional[str] = None,
    ):
        self.name = name
        self.passed = passed
        self.message = message
        self.severity = severity
        self.fix_hint = fix_hint

    def __str__(self) -> str:
        status = "PASS" if self.passed else self.severity.upper()
        return f"[{status}] {self.name}: {self.message}"


def validate_configuration(config_path: Optional[Path] = None) -> Tuple[Optional[object], List[ValidationResult]]:
    """
    Load and validate config.yaml.

    Returns:
        Tuple of (Config or None, results)
    """
    from satquest.config import Config

    try:
        config = Config(config_path)
    except (ValueError, OSError) as e:
        return None, [
            ValidationResult(
                name="Configuration",
                passed=False,
                message=f"Invalid configuration: {e}",
                severity="error",
                fix_hint="Compare your config.yaml with config.example.yaml",
            )
        ]

    if config.config_path.exists():
        message = f"Loaded {config.config_path}"
    else:
        message = f"{config.config_path} not found, using defaults"

    return config, [
        ValidationResult(name="Configuration", passed=True, message=message, severity="info")
    ]


def _check_writable_dir(name: str, directory: Path) -> ValidationResult:
    if not directory.exists():
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return ValidationResult(
                name=name,
                passed=False,
                message=f"Cannot create directory {directory}: {e}",
                severity="error",
                fix_hint="Create the directory manually or check permissions",
            )
        return ValidationResult(
            name=name, passed=True, message=f"Created directory: {directory}", severity="info"
        )

    if not os.access(directory, os.W_OK):
        return ValidationResult(
            name=name,
            passed=False,
            message=f"No write permission for directory: {directory}",
            severity="error",
            fix_hint="Fix directory permissions: chmod 755",
        )

    return ValidationResult(
        name=name, passed=True, message=f"{directory} is writable", severity="info"
    )


def validate_file_system(config) -> List[ValidationResult]:
    """Local progress database, device id and question file."""
    results = [
        _check_writable_dir("Progress Database Directory", config.local_db_path.parent),
        _check_writable_dir("Device Id Directory", config.device_id_path.parent),
    ]

    questions_path = config.questions_path
    if questions_path is None:
        results.append(
            ValidationResult(
                name="Question Bank",
                passed=False,
                message="No question file configured; practice will rely on client grading",
                severity="warning",
                fix_hint="Set questions.path in config.yaml",
            )
        )
    elif not questions_path.exists():
        results.append(
            ValidationResult(
                name="Question Bank",
                passed=False,
                message=f"Question file not found: {questions_path}",
                severity="error",
            )
        )
    else:
        try:
            from satquest.questions import QuestionBank

            bank = QuestionBank.from_yaml(questions_path)
            results.append(
                ValidationResult(
                    name="Question Bank",
                    passed=True,
                    message=f"{len(bank)} questions available",
                    severity="info",
                )
            )
        except (ValueError, KeyError) as e:
            results.append(
                ValidationResult(
                    name="Question Bank",
                    passed=False,
                    message=f"Malformed question file: {e}",
                    severity="error",
                )
            )

    return results


def validate_remote(config) -> List[ValidationResult]:
    """Remote backend selection and credentials."""
    backend = config.remote_backend

    if backend == "memory":
        return [
            ValidationResult(
                name="Remote Store",
                passed=False,
                message="Using in-memory remote store; profiles are lost on restart",
                severity="warning",
                fix_hint="Set remote.backend: supabase for persistent leaderboards",
            )
        ]

    results = []
    for env_var, value in (("SUPABASE_URL", config.supabase_url), ("SUPABASE_KEY", config.supabase_key)):
        if value:
            results.append(
                ValidationResult(
                    name=f"Supabase: {env_var}",
                    passed=True,
                    message=f"{env_var} configured",
                    severity="info",
                )
            )
        else:
            results.append(
                ValidationResult(
                    name=f"Supabase: {env_var}",
                    passed=False,
                    message=f"{env_var} not set",
                    severity="error",
                    fix_hint=f"Set {env_var} in your .env file",
                )
            )

    try:
        __import__("supabase")
        results.append(
            ValidationResult(
                name="Package: supabase",
                passed=True,
                message="Supabase client available",
                severity="info",
            )
        )
    except ImportError:
        results.append(
            ValidationResult(
                name="Package: supabase",
                passed=False,
                message="Supabase client not installed",
                severity="error",
                fix_hint="Run: pip install supabase",
            )
        )

    return results


def run_startup_validation(
    config_path: Optional[Path] = None, strict: bool = False, log_results: bool = True
) -> Tuple[bool, List[ValidationResult]]:
    """
    Run all startup validations.

    Args:
        config_path: Optional path to config.yaml
        strict: If True, treat warnings as errors
        log_results: If True, log validation results

    Returns:
        Tuple of (all_passed, results)
    """
    config, all_results = validate_configuration(config_path)

    if config is not None:
        for category, validator in (("File System", validate_file_system), ("Remote", validate_remote)):
            try:
                all_results.extend(validator(config))
            except Exception as e:
                all_results.append(
                    ValidationResult(
                        name=f"{category} Validation",
                        passed=False,
                        message=f"Validation failed with error: {e}",
                        severity="error",
                    )
                )

    if log_results:
        logger.info("=" * 60)
        logger.info("STARTUP VALIDATION RESULTS")
        logger.info("=" * 60)

        for result in all_results:
            if result.passed or result.severity == "info":
                logger.info(str(result))
            elif result.severity == "error":
                logger.error(str(result))
                if result.fix_hint:
                    logger.error(f"  Hint: {result.fix_hint}")
            else:
                logger.warning(str(result))
                if result.fix_hint:
                    logger.warning(f"  Hint: {result.fix_hint}")

        logger.info("=" * 60)

    errors = [r for r in all_results if not r.passed and r.severity == "error"]
    warnings = [r for r in all_results if not r.passed and r.severity == "warning"]

    if errors:
        logger.error(f"Startup validation failed with {len(errors)} error(s)")
        return False, all_results

    if strict and warnings:
        logger.error(f"Startup validation failed with {len(warnings)} warning(s) (strict mode)")
        return False, all_results

    logger.info("Startup validation passed")
    return True, all_results


def get_health_status(config, engine) -> Dict:
    """
    Get current health status for the health check endpoint.

    Returns:
        Health status dictionary
    """
    status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {},
    }

    status["checks"]["engine"] = {
        "status": "healthy" if engine.initialized else "unhealthy",
        "initialized": engine.initialized,
    }
    if not engine.initialized:
        status["status"] = "unhealthy"

    syncer = engine.syncer
    if syncer is not None:
        breaker_state = syncer.circuit_breaker.state
        status["checks"]["remote_sync"] = {
            "status": "healthy" if breaker_state != "open" else "degraded",
            "pending": syncer.has_pending,
            "sent": syncer.sent_count,
            "failed": syncer.failed_count,
            "circuit": breaker_state,
        }

    try:
        total, used, free = shutil.disk_usage(config.local_db_path.parent)
        free_gb = free / (1024**3)
        status["checks"]["disk"] = {
            "status": "healthy" if free_gb > 1 else "warning",
            "free_gb": round(free_gb, 2),
        }
        if free_gb < 0.5:
            status["status"] = "unhealthy"
    except OSError as e:
        status["checks"]["disk"] = {"status": "unknown", "error": str(e)}

    return status
