# tests/test_config.py
# How to run:
#   pytest -q
#
# What this covers:
#   - Defaults when options are absent
#   - Malformed or out-of-range values fall back / clamp instead of raising
#   - Weights completed for every feature; unknown names ignored

from app.analytics.config import MonitorConfig, FeatureKey, FEATURE_KEYS

def test_defaults():
    cfg = MonitorConfig.from_mapping(None)
    assert cfg == MonitorConfig()
    assert cfg.window_seconds == 60.0
    assert cfg.baseline_windows == 10
    assert cfg.score_threshold == 3.0
    assert cfg.consecutive_windows == 2
    assert cfg.idle_ms == 60000
    assert cfg.enable_logging is True
    assert all(cfg.weight(k) == 1.0 for k in FEATURE_KEYS)

def test_camel_case_options():
    cfg = MonitorConfig.from_mapping({
        "windowSeconds": 30,
        "baselineWindows": "12",
        "scoreThreshold": 2.5,
        "consecutiveWindows": 3,
        "idleMs": 45000,
        "enableLogging": "false",
        "logPath": "out/log.csv",
    })
    assert cfg.window_seconds == 30.0
    assert cfg.baseline_windows == 12
    assert cfg.score_threshold == 2.5
    assert cfg.consecutive_windows == 3
    assert cfg.idle_ms == 45000
    assert cfg.enable_logging is False
    assert cfg.log_path == "out/log.csv"

def test_bad_values_fall_back():
    cfg = MonitorConfig.from_mapping({"windowSeconds": "abc", "consecutiveWindows": 0, "idleMs": None})
    assert cfg.window_seconds == 60.0
    assert cfg.consecutive_windows == 1
    assert cfg.idle_ms == 60000

def test_weights_are_completed():
    cfg = MonitorConfig.from_mapping({"weights": {"keysPerMin": 2, "bogus": 5, "pauseRatio": "x"}})
    assert set(cfg.weights) == set(FEATURE_KEYS)
    assert cfg.weights[FeatureKey.KEYS_PER_MIN] == 2.0
    assert cfg.weights[FeatureKey.PAUSE_RATIO] == 1.0

def test_null_or_structured_weights_are_ignored():
    cfg = MonitorConfig.from_mapping({"weights": {"keysPerMin": None, "pauseRatio": [1], "errorsPerMin": {"x": 1}}})
    assert set(cfg.weights) == set(FEATURE_KEYS)
    assert cfg.weights[FeatureKey.KEYS_PER_MIN] == 1.0
    assert cfg.weights[FeatureKey.PAUSE_RATIO] == 1.0
    assert cfg.weights[FeatureKey.ERRORS_PER_MIN] == 1.0

def test_non_finite_values_fall_back():
    cfg = MonitorConfig.from_mapping({
        "scoreThreshold": float("nan"),
        "windowSeconds": "inf",
        "baselineWindows": float("inf"),
        "weights": {"keysPerMin": float("nan"), "pauseRatio": "-inf", "undoRedoPerMin": 0.5},
    })
    assert cfg.score_threshold == 3.0
    assert cfg.window_seconds == 60.0
    assert cfg.baseline_windows == 10
    assert cfg.weights[FeatureKey.KEYS_PER_MIN] == 1.0
    assert cfg.weights[FeatureKey.PAUSE_RATIO] == 1.0
    assert cfg.weights[FeatureKey.UNDO_REDO_PER_MIN] == 0.5
