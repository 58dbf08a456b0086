# app/analytics/risk.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Mapping, Optional
import numpy as np

from app.analytics.config import FeatureKey, FEATURE_KEYS, default_weights
from app.analytics.features import FeatureVector


class RiskScorer:
    """Weighted linear sum over z-scored features. Not clamped: magnitude is severity."""
    def __init__(self, weights: Optional[Mapping[FeatureKey, float]] = None):
        merged = default_weights()
        if weights:
            merged.update({FeatureKey(k): float(v) for k, v in weights.items()})
        self._w = np.array([merged[k] for k in FEATURE_KEYS], dtype=float)

    def weight(self, key: FeatureKey) -> float:
        return float(self._w[FEATURE_KEYS.index(FeatureKey(key))])

    def score(self, normalized: FeatureVector) -> float:
        return float(np.dot(self._w, normalized.as_array()))

    def contributions(self, normalized: FeatureVector) -> dict:
        """Per-feature weighted terms of score(), largest first."""
        terms = self._w * normalized.as_array()
        pairs = [(k.value, float(t)) for k, t in zip(FEATURE_KEYS, terms)]
        return dict(sorted(pairs, key=lambda kv: kv[1], reverse=True))


@dataclass
class RiskState:
    above_threshold_streak: int = 0
    last_score: float = 0.0


class HysteresisTrigger:
    """
    Fires once a score has been >= threshold for `consecutive_required`
    windows in a row. A single window below threshold resets the streak, and
    so does firing: a sustained plateau fires again only after the streak has
    rebuilt from zero.
    """
    def __init__(self, threshold: float, consecutive_required: int):
        self.threshold = threshold
        self.consecutive_required = max(1, int(consecutive_required))
        self.state = RiskState()

    def update(self, score: float) -> bool:
        st = self.state
        st.last_score = score
        if score >= self.threshold:
            st.above_threshold_streak += 1
        else:
            st.above_threshold_streak = 0

        if st.above_threshold_streak >= self.consecutive_required:
            st.above_threshold_streak = 0
            return True
        return False

    def reset(self) -> None:
        self.state = RiskState()
