from typing import Any, Dict, List, Optional, Tuple

from modules.promotion_gate import PromotionCriteria

DEFAULT_SYMBOLS = ["BTC/USDT", "ETH/USDT", "SOL/USDT"]

DEFAULTS: Dict[str, Any] = {
    "SYMBOLS": DEFAULT_SYMBOLS,
    "SCAN_INTERVAL_MS": 5000,
    "CLOSE_DELAY_MIN_MS": 30000,
    "CLOSE_DELAY_MAX_MS": 300000,
    "EXIT_PRICE_JITTER": 0.02,
    "MIN_CONFIDENCE": 0.7,
    "PROMOTION_MIN_CLOSED": 50,
    "PROMOTION_MIN_WIN_RATE": 0.75,
    "PROMOTION_MIN_PNL": 500.0,
    "CONFIDENCE_INCREMENT": 0.01,
    "CONFIDENCE_CAP": 0.95,
    "INITIAL_CONFIDENCE": 0.5,
    "INITIAL_BALANCE": 10000.0,
    "PROMOTION_CHECK_INTERVAL_MS": 300000,
}


class ConfigManager:
    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = dict(config or {})

    def get(self, key: str, default: Any = None) -> Any:
        value = self.config.get(key)
        if value is None:
            return DEFAULTS.get(key, default)
        return value

    def override(self, **values: Any) -> "ConfigManager":
        """Copy with some keys replaced (handy in tests and scripts)."""
        merged = dict(self.config)
        merged.update(values)
        return ConfigManager(merged)

    def get_symbols(self) -> List[str]:
        return list(self.config.get("SYMBOLS") or self.config.get("symbols") or DEFAULT_SYMBOLS)

    def get_scan_interval(self) -> float:
        """Seconds between two scan ticks."""
        return int(self.get("SCAN_INTERVAL_MS")) / 1000.0

    def get_close_delay_window(self) -> Tuple[float, float]:
        """(lower, upper) bound in seconds for the delayed close."""
        return (
            int(self.get("CLOSE_DELAY_MIN_MS")) / 1000.0,
            int(self.get("CLOSE_DELAY_MAX_MS")) / 1000.0,
        )

    def get_exit_jitter(self) -> float:
        return float(self.get("EXIT_PRICE_JITTER"))

    def get_min_confidence(self) -> float:
        return float(self.get("MIN_CONFIDENCE"))

    def get_confidence_rule(self) -> Tuple[float, float]:
        """(increment, cap) applied to the confidence level on every close."""
        return float(self.get("CONFIDENCE_INCREMENT")), float(self.get("CONFIDENCE_CAP"))

    def get_initial_confidence(self) -> float:
        return float(self.get("INITIAL_CONFIDENCE"))

    def get_initial_balance(self) -> float:
        return float(self.get("INITIAL_BALANCE"))

    def get_promotion_check_interval(self) -> float:
        return int(self.get("PROMOTION_CHECK_INTERVAL_MS")) / 1000.0

    def get_promotion_criteria(self) -> PromotionCriteria:
        return PromotionCriteria(
            min_closed=int(self.get("PROMOTION_MIN_CLOSED")),
            min_win_rate=float(self.get("PROMOTION_MIN_WIN_RATE")),
            min_pnl=float(self.get("PROMOTION_MIN_PNL")),
        )
