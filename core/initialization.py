"""
core/initialization.py
----------------------
Loads configuration from .env, normalizes symbols and tunables, and wires the
engine with simple dependency-injection (DI) overrides.
"""

from __future__ import annotations

import os
import logging
from typing import Dict, Optional

from dotenv import load_dotenv

from core.engine import TradingEngine
from utils.config_manager import ConfigManager, DEFAULTS
from utils.config_validator import validate_config

_INT_KEYS = (
    "SCAN_INTERVAL_MS",
    "CLOSE_DELAY_MIN_MS",
    "CLOSE_DELAY_MAX_MS",
    "PROMOTION_MIN_CLOSED",
    "PROMOTION_CHECK_INTERVAL_MS",
)
_FLOAT_KEYS = (
    "EXIT_PRICE_JITTER",
    "MIN_CONFIDENCE",
    "PROMOTION_MIN_WIN_RATE",
    "PROMOTION_MIN_PNL",
    "CONFIDENCE_INCREMENT",
    "CONFIDENCE_CAP",
    "INITIAL_CONFIDENCE",
    "INITIAL_BALANCE",
)


def load_configuration(env_path: str = "config.env") -> Dict:
    """
    Load settings from an .env-style file and return a structured config dict.
    Unset keys fall back to the defaults in ``utils.config_manager``.
    """
    log = logging.getLogger(__name__)
    load_dotenv(dotenv_path=env_path)

    symbols_raw = os.getenv("SYMBOLS", "")
    symbols = [s.strip().upper() for s in symbols_raw.split(",") if s.strip()]

    conf: Dict[str, object] = {"SYMBOLS": symbols or list(DEFAULTS["SYMBOLS"])}
    for key in _INT_KEYS:
        raw = os.getenv(key)
        conf[key] = int(raw) if raw not in (None, "") else DEFAULTS[key]
    for key in _FLOAT_KEYS:
        raw = os.getenv(key)
        conf[key] = float(raw) if raw not in (None, "") else DEFAULTS[key]

    log.debug("Parsed SYMBOLS: %s", conf["SYMBOLS"])
    log.debug("Close-delay window: %s-%s ms", conf["CLOSE_DELAY_MIN_MS"], conf["CLOSE_DELAY_MAX_MS"])

    return conf


def initialize_components(
    config: Dict,
    overrides: Optional[Dict[str, object]] = None,
    logger: Optional[logging.Logger] = None
    ) -> Dict[str, object]:
    """
    Validate the config and build the engine (supports DI via overrides).

    Keys you can override:
    {"logger", "decision_source", "bus", "rng", "live_executor"}
    """
    overrides = overrides or {}
    validate_config(config)

    logger = overrides.get("logger") or logger or logging.getLogger("PaperGate")

    engine = TradingEngine(
        ConfigManager(config),
        overrides.get("decision_source"),
        bus=overrides.get("bus"),
        rng=overrides.get("rng"),
        live_executor=overrides.get("live_executor"),
        logger=logger,
    )

    logger.info("✅ Logger initialized.")
    logger.info("✅ Decision source initialized: %s", engine.decision_source.__class__.__name__)
    logger.info("✅ Ledger initialized (confidence %.2f).", engine.ledger.counters().confidence_level)
    logger.info("✅ Engine initialized in %s mode.", engine.mode.value.upper())

    return {
        "logger": logger,
        "engine": engine,
        "ledger": engine.ledger,
        "scheduler": engine.scheduler,
        "controller": engine.controller,
        "decision_source": engine.decision_source,
    }
