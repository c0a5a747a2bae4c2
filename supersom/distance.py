"""Distance calculation utilities for Super-SOM.

Every metric compares the rows of ``a`` with ``b`` along the last axis and
ignores dimensions where either side is missing (NaN).
"""

from typing import Callable, List, Sequence, Tuple

import numpy as np

from .config import DistanceMetric


class DistanceCalculator:
    """Calculate distances using different metrics."""

    # Binarization threshold of the Tanimoto metric
    TANIMOTO_THRESHOLD = 0.5

    @staticmethod
    def sqeuclidean(a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Calculate squared Euclidean distance."""
        diff = a - b
        return np.nansum(diff * diff, axis=-1)

    @staticmethod
    def euclidean(a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Calculate Euclidean distance."""
        return np.sqrt(DistanceCalculator.sqeuclidean(a, b))

    @staticmethod
    def manhattan(a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Calculate Manhattan distance."""
        return np.nansum(np.abs(a - b), axis=-1)

    @staticmethod
    def tanimoto(a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Fraction of valid dimensions whose binarized values differ."""
        a, b = np.broadcast_arrays(a, b)
        valid = ~(np.isnan(a) | np.isnan(b))
        threshold = DistanceCalculator.TANIMOTO_THRESHOLD
        # NaN compares False, masked out by ``valid`` below
        with np.errstate(invalid="ignore"):
            mismatch = (a >= threshold) != (b >= threshold)
        counts = valid.sum(axis=-1)
        mismatches = (mismatch & valid).sum(axis=-1)
        return np.divide(
            mismatches,
            counts,
            out=np.zeros(np.shape(counts), dtype=np.float64),
            where=counts > 0,
        )


_METRICS = {
    DistanceMetric.SQEUCLIDEAN: DistanceCalculator.sqeuclidean,
    DistanceMetric.EUCLIDEAN: DistanceCalculator.euclidean,
    DistanceMetric.MANHATTAN: DistanceCalculator.manhattan,
    DistanceMetric.TANIMOTO: DistanceCalculator.tanimoto,
}


def get_distance_function(metric: DistanceMetric) -> Callable:
    """Resolve a metric identifier to its function"""
    return _METRICS[metric]


class LayeredDistance:
    """
    Weighted multi-layer distance between samples and prototypes.

    total = sum over layers of weight * metric(segment_a, segment_b)

    Layer order, slices, weights and metric functions are fixed at
    construction and reused for every call.
    """

    def __init__(self, terms: Sequence[Tuple[slice, float, Callable]]):
        self.terms: List[Tuple[slice, float, Callable]] = list(terms)

    @classmethod
    def from_layers(cls, layers) -> "LayeredDistance":
        """Build from a fitted LayerSet"""
        return cls(
            [
                (sl, float(layer.weight), get_distance_function(layer.spec.metric))
                for layer, sl in zip(layers.layers, layers.slices)
            ]
        )

    def __call__(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Distance of the rows of ``a`` to ``b`` (broadcast on leading axes)"""
        a = np.asarray(a, dtype=np.float64)
        b = np.asarray(b, dtype=np.float64)
        shape = np.broadcast_shapes(a.shape[:-1], b.shape[:-1])
        total = np.zeros(shape, dtype=np.float64)
        for sl, weight, func in self.terms:
            if weight == 0 or sl.stop == sl.start:
                continue
            total += weight * func(a[..., sl], b[..., sl])
        return total

    def between(self, a: np.ndarray, b: np.ndarray) -> float:
        """Distance between two single vectors"""
        return float(self(np.asarray(a).reshape(-1), np.asarray(b).reshape(-1)))
