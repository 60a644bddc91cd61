from utils.config_manager import DEFAULTS


def _value(config: dict, key: str):
    value = config.get(key)
    return DEFAULTS[key] if value is None else value


def validate_config(config: dict):
    symbols = config.get("SYMBOLS", DEFAULTS["SYMBOLS"])
    if not isinstance(symbols, list) or not symbols:
        raise TypeError("SYMBOLS must be a non-empty list.")
    if not all(isinstance(s, str) and s for s in symbols):
        raise TypeError("SYMBOLS must contain non-empty strings.")

    for key in ("SCAN_INTERVAL_MS", "PROMOTION_CHECK_INTERVAL_MS"):
        if int(_value(config, key)) <= 0:
            raise ValueError(f"{key} must be positive.")

    lo = int(_value(config, "CLOSE_DELAY_MIN_MS"))
    hi = int(_value(config, "CLOSE_DELAY_MAX_MS"))
    if lo < 0 or hi < lo:
        raise ValueError(
            f"Close-delay window must satisfy 0 <= min <= max, got [{lo}, {hi}]."
        )

    jitter = float(_value(config, "EXIT_PRICE_JITTER"))
    if not 0 <= jitter < 1:
        raise ValueError("EXIT_PRICE_JITTER must be in [0, 1).")

    for key in ("MIN_CONFIDENCE", "PROMOTION_MIN_WIN_RATE", "INITIAL_CONFIDENCE", "CONFIDENCE_CAP"):
        if not 0 <= float(_value(config, key)) <= 1:
            raise ValueError(f"{key} must be in [0, 1].")

    if float(_value(config, "INITIAL_CONFIDENCE")) > float(_value(config, "CONFIDENCE_CAP")):
        raise ValueError("INITIAL_CONFIDENCE must not exceed CONFIDENCE_CAP.")

    if float(_value(config, "CONFIDENCE_INCREMENT")) < 0:
        raise ValueError("CONFIDENCE_INCREMENT must not be negative.")

    if int(_value(config, "PROMOTION_MIN_CLOSED")) < 1:
        raise ValueError("PROMOTION_MIN_CLOSED must be at least 1.")
