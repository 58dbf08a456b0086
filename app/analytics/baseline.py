# app/analytics/baseline.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict
import numpy as np

from app.analytics.config import FeatureKey, FEATURE_KEYS
from app.analytics.features import FeatureVector

# Floor for the standard deviation used in normalize()
STD_EPSILON = 1e-6


@dataclass(frozen=True)
class BaselineStats:
    count: int
    mean: float
    sum_squared_delta: float

    @property
    def std(self) -> float:
        # sample std; a single sample has no spread, so fall back to 1.0
        if self.count > 1:
            return float(np.sqrt(self.sum_squared_delta / (self.count - 1)))
        return 1.0


class BaselineCalibrator:
    """
    Welford online mean/variance, one estimator per feature.

    All features are updated together, so they share one sample count. The
    calibrator has no warm-up flag of its own: callers compare count() with
    their configured baseline window count and either add() or normalize().
    """
    def __init__(self):
        n = len(FEATURE_KEYS)
        self._n = 0
        self._mean = np.zeros(n, dtype=float)
        self._m2 = np.zeros(n, dtype=float)

    def add(self, vector: FeatureVector) -> None:
        x = vector.as_array()
        self._n += 1
        delta = x - self._mean
        self._mean = self._mean + delta / self._n
        self._m2 = self._m2 + delta * (x - self._mean)

    def count(self) -> int:
        return self._n

    def stats(self, key: FeatureKey) -> BaselineStats:
        i = FEATURE_KEYS.index(FeatureKey(key))
        return BaselineStats(count=self._n, mean=float(self._mean[i]), sum_squared_delta=float(self._m2[i]))

    def mean(self, key: FeatureKey) -> float:
        return self.stats(key).mean

    def std(self, key: FeatureKey) -> float:
        return self.stats(key).std

    def _std_array(self) -> np.ndarray:
        if self._n > 1:
            return np.sqrt(self._m2 / (self._n - 1))
        return np.ones_like(self._mean)

    def normalize(self, vector: FeatureVector) -> FeatureVector:
        std = np.maximum(STD_EPSILON, self._std_array())
        return FeatureVector.from_array((vector.as_array() - self._mean) / std)

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        """Per-feature {count, mean, std} for logs and dashboards."""
        std = self._std_array()
        return {
            k.value: {"count": self._n, "mean": float(self._mean[i]), "std": float(std[i])}
            for i, k in enumerate(FEATURE_KEYS)
        }
