# tests/test_risk.py
# How to run:
#   pytest -q
#
# What this covers:
#   - Weighted linear score and per-feature contributions
#   - Hysteresis: fires after N consecutive windows at/above threshold,
#     any window below resets, firing resets the streak

from app.analytics.config import FeatureKey
from app.analytics.features import FeatureVector
from app.analytics.risk import RiskScorer, HysteresisTrigger

def test_default_weights_sum_features():
    z = FeatureVector.from_names({"keysPerMin": 2.0, "pauseRatio": 1.0, "errorsPerMin": -0.5})
    assert RiskScorer().score(z) == 2.5

def test_custom_weights_and_contributions():
    scorer = RiskScorer({FeatureKey.KEYS_PER_MIN: 2.0, "pauseRatio": 0.0})
    z = FeatureVector.from_names({"keysPerMin": 2.0, "pauseRatio": 10.0, "undoRedoPerMin": 1.0})
    assert scorer.weight(FeatureKey.PAUSE_RATIO) == 0.0
    assert scorer.weight(FeatureKey.BACKSPACES_PER_MIN) == 1.0
    assert scorer.score(z) == 5.0
    contrib = scorer.contributions(z)
    assert list(contrib)[:2] == ["keysPerMin", "undoRedoPerMin"]
    assert sum(contrib.values()) == 5.0

def test_score_is_not_clamped():
    z = FeatureVector.from_names({"keysPerMin": -40.0})
    assert RiskScorer().score(z) == -40.0

def test_dip_resets_streak():
    trig = HysteresisTrigger(threshold=3.0, consecutive_required=2)
    fired = [trig.update(s) for s in [4, 1, 4, 4]]
    assert fired == [False, False, False, True]

def test_plateau_at_threshold_fires_every_n_windows():
    trig = HysteresisTrigger(threshold=3.0, consecutive_required=2)
    fired = [trig.update(3.0) for _ in range(6)]
    assert fired == [False, True, False, True, False, True]

def test_single_window_requirement_and_reset():
    trig = HysteresisTrigger(threshold=1.0, consecutive_required=1)
    assert trig.update(1.5)
    assert trig.update(1.5)
    assert not trig.update(0.5)

    trig = HysteresisTrigger(threshold=1.0, consecutive_required=3)
    trig.update(2.0)
    trig.update(2.0)
    assert trig.state.above_threshold_streak == 2
    trig.reset()
    assert trig.state.above_threshold_streak == 0
    assert not trig.update(2.0)
