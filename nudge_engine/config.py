"""
Engine configuration.

Loaded from ``NUDGE_*`` environment variables (a ``.env`` file is honoured).
Nothing here is fatal: a bad value is logged and the default is used.

    NUDGE_SNOOZE_DB_PATH              sqlite file for snooze entries (":memory:")
    NUDGE_SNOOZE_KEY                  key the entry list is stored under
    NUDGE_LOG_LEVEL                   INFO, DEBUG, ...
    NUDGE_LEAD_INTERVAL_SECONDS       lead source refresh cadence
    NUDGE_DEAL_INTERVAL_SECONDS       deal source refresh cadence
    NUDGE_CAPTURE_INTERVAL_SECONDS    capture source refresh cadence
    NUDGE_ENABLED                     master kill switch
    NUDGE_STALE_LEAD_WARNING_DAYS
    NUDGE_STALE_LEAD_CRITICAL_DAYS
    NUDGE_DEAL_STALLED_DAYS
"""

import logging
import os
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError

from nudge_engine.models.settings import NudgeSettings, RefreshConfig

logger = logging.getLogger(__name__)

SNOOZED_NUDGES_KEY = "doughy_snoozed_nudges"

_REFRESH_ENV = {
    "NUDGE_LEAD_INTERVAL_SECONDS": "lead_interval_seconds",
    "NUDGE_DEAL_INTERVAL_SECONDS": "deal_interval_seconds",
    "NUDGE_CAPTURE_INTERVAL_SECONDS": "capture_interval_seconds",
}

_SETTINGS_ENV = {
    "NUDGE_ENABLED": "enabled",
    "NUDGE_STALE_LEAD_WARNING_DAYS": "stale_lead_warning_days",
    "NUDGE_STALE_LEAD_CRITICAL_DAYS": "stale_lead_critical_days",
    "NUDGE_DEAL_STALLED_DAYS": "deal_stalled_days",
}


class EngineConfig(BaseModel):
    """Top-level configuration for a nudge engine deployment."""

    snooze_db_path: str = ":memory:"
    snooze_key: str = SNOOZED_NUDGES_KEY
    log_level: str = "INFO"
    refresh: RefreshConfig = RefreshConfig()
    settings: NudgeSettings = NudgeSettings()


def load_nudge_settings(raw: Optional[Any]) -> NudgeSettings:
    """
    Validate caller-supplied settings.
    Missing or malformed settings fall back to the built-in defaults.
    """
    if raw is None:
        return NudgeSettings()
    if isinstance(raw, NudgeSettings):
        return raw
    try:
        return NudgeSettings.model_validate(raw)
    except ValidationError as e:
        logger.warning(
            "Invalid nudge settings, using defaults",
            extra={"context": {"errors": e.error_count()}},
        )
        return NudgeSettings()


def _collect(env: Mapping[str, str], mapping: Dict[str, str]) -> Dict[str, str]:
    return {field: env[key] for key, field in mapping.items() if env.get(key)}


def load_config(env: Optional[Mapping[str, str]] = None) -> EngineConfig:
    """Build an EngineConfig from the environment."""
    if env is None:
        load_dotenv()
        env = os.environ

    try:
        refresh = RefreshConfig.model_validate(_collect(env, _REFRESH_ENV))
    except ValidationError:
        logger.warning("Invalid refresh intervals in environment, using defaults")
        refresh = RefreshConfig()

    settings_raw = _collect(env, _SETTINGS_ENV)
    settings = load_nudge_settings(settings_raw) if settings_raw else NudgeSettings()

    return EngineConfig(
        snooze_db_path=env.get("NUDGE_SNOOZE_DB_PATH") or ":memory:",
        snooze_key=env.get("NUDGE_SNOOZE_KEY") or SNOOZED_NUDGES_KEY,
        log_level=(env.get("NUDGE_LOG_LEVEL") or "INFO").upper(),
        refresh=refresh,
        settings=settings,
    )
