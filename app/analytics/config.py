from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
import math
from typing import Any, Dict, Mapping, Optional
import structlog

log = structlog.get_logger()


class FeatureKey(str, Enum):
    """Closed set of window features, in canonical (vector) order."""
    KEYS_PER_MIN = "keysPerMin"
    BACKSPACES_PER_MIN = "backspacesPerMin"
    PAUSE_RATIO = "pauseRatio"
    ERRORS_PER_MIN = "errorsPerMin"
    UNDO_REDO_PER_MIN = "undoRedoPerMin"
    CURSOR_JUMPS_PER_MIN = "cursorJumpsPerMin"
    FILE_SWITCHES_PER_MIN = "fileSwitchesPerMin"
    CODE_CHURN_LOC_PER_MIN = "codeChurnLocPerMin"


FEATURE_KEYS = tuple(FeatureKey)


def default_weights() -> Dict[FeatureKey, float]:
    return {k: 1.0 for k in FEATURE_KEYS}


@dataclass(frozen=True)
class MonitorConfig:
    # windows (seconds)
    window_seconds: float = 60.0
    idle_check_seconds: float = 5.0

    # calibration
    baseline_windows: int = 10

    # scoring / hysteresis
    score_threshold: float = 3.0
    consecutive_windows: int = 2
    weights: Dict[FeatureKey, float] = field(default_factory=default_weights)

    # idle accounting
    idle_ms: int = 60000

    # side analysis + sinks
    pattern_analysis_seconds: float = 30.0
    enable_logging: bool = True
    log_path: str = "editpulse_log.csv"
    db_path: str = "editpulse_days.sqlite3"

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "MonitorConfig":
        """
        Build a config from camelCase options (e.g. a parsed JSON file).
        Missing or malformed values fall back to their defaults; weights are
        completed for every FeatureKey here, not at lookup time.
        """
        raw = raw or {}
        d = cls()
        return cls(
            window_seconds=_read(raw, "windowSeconds", float, d.window_seconds, minimum=1.0),
            idle_check_seconds=_read(raw, "idleCheckSeconds", float, d.idle_check_seconds, minimum=0.1),
            baseline_windows=_read(raw, "baselineWindows", int, d.baseline_windows, minimum=0),
            score_threshold=_read(raw, "scoreThreshold", float, d.score_threshold),
            consecutive_windows=_read(raw, "consecutiveWindows", int, d.consecutive_windows, minimum=1),
            weights=_read_weights(raw.get("weights")),
            idle_ms=_read(raw, "idleMs", int, d.idle_ms, minimum=0),
            pattern_analysis_seconds=_read(raw, "patternAnalysisSeconds", float, d.pattern_analysis_seconds, minimum=0.0),
            enable_logging=_read_bool(raw, "enableLogging", d.enable_logging),
            log_path=str(raw.get("logPath") or d.log_path),
            db_path=str(raw.get("dbPath") or d.db_path),
        )

    def weight(self, key: FeatureKey) -> float:
        return self.weights.get(key, 1.0)


def _read(raw: Mapping[str, Any], name: str, cast, default, minimum=None):
    if name not in raw or raw[name] is None:
        return default
    try:
        value = cast(raw[name])
    except (TypeError, ValueError, OverflowError):
        log.warning("config.invalid", option=name, value=repr(raw[name]), fallback=default)
        return default
    if isinstance(value, float) and not math.isfinite(value):
        log.warning("config.invalid", option=name, value=repr(raw[name]), fallback=default)
        return default
    if minimum is not None and value < minimum:
        log.warning("config.clamped", option=name, value=value, minimum=minimum)
        return cast(minimum)
    return value


def _read_bool(raw: Mapping[str, Any], name: str, default: bool) -> bool:
    value = raw.get(name)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _read_weights(raw: Any) -> Dict[FeatureKey, float]:
    weights = default_weights()
    if not raw:
        return weights
    if not isinstance(raw, Mapping):
        log.warning("config.invalid", option="weights", value=repr(raw))
        return weights
    for name, value in raw.items():
        try:
            key = FeatureKey(name)
            weight = float(value)
        except (TypeError, ValueError):
            # unknown feature name or non-numeric weight
            log.warning("config.weight.ignored", feature=name, value=repr(value))
            continue
        if not math.isfinite(weight):
            log.warning("config.weight.ignored", feature=name, value=repr(value))
            continue
        weights[key] = weight
    return weights
