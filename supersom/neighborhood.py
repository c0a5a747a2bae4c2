"""
Neighborhood kernels: grid distance and radius to update influence
"""

from typing import Callable

import numpy as np

from .config import Neighborhood


def gaussian(distances: np.ndarray, radius: float) -> np.ndarray:
    """exp(-d^2 / (2 r^2)); a zero radius degenerates to the bubble of radius 0"""
    distances = np.asarray(distances, dtype=np.float64)
    variance = 2 * radius**2
    if radius <= 0 or variance == 0:
        return (distances == 0).astype(np.float64)
    return np.exp(-(distances**2) / variance)


def bubble(distances: np.ndarray, radius: float) -> np.ndarray:
    """1 within the radius, 0 outside"""
    distances = np.asarray(distances, dtype=np.float64)
    return (distances <= max(radius, 0.0)).astype(np.float64)


_KERNELS = {
    Neighborhood.GAUSSIAN: gaussian,
    Neighborhood.BUBBLE: bubble,
}


def get_neighborhood_function(kind: Neighborhood) -> Callable[[np.ndarray, float], np.ndarray]:
    """Resolve a neighborhood identifier to its kernel"""
    return _KERNELS[kind]


def with_cutoff(kernel: Callable, cutoff_factor: float) -> Callable:
    """Zero the influence beyond ``cutoff_factor * radius``"""

    def windowed(distances: np.ndarray, radius: float) -> np.ndarray:
        influence = kernel(distances, radius)
        return np.where(np.asarray(distances) <= cutoff_factor * radius, influence, 0.0)

    return windowed
