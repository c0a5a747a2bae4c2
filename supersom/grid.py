"""
Grid of prototype-holding nodes and best-match search
"""

from collections import Counter
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from sklearn.decomposition import PCA

from .config import InitStrategy, Topology
from .distance import LayeredDistance
from .exceptions import ConfigError, DataError, StateError


@dataclass(frozen=True)
class GridSnapshot:
    """Read-only copy of the grid handed to external consumers"""

    step: int
    rows: int
    cols: int
    prototypes: np.ndarray  # (rows, cols, width), not writeable
    feature_names: List[str]
    label_majority: Optional[List[List[Optional[Any]]]] = None

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.rows, self.cols)


class Grid:
    """
    Fixed rows x cols array of nodes stored row-major.

    Node ``(row, col)`` lives at index ``row * cols + col``; scanning in
    index order makes ties resolve to the smallest row, then smallest col.
    """

    HEXAGONAL_ADJACENCY_TOLERANCE = 1.1  # Tolerance for hexagonal adjacency

    def __init__(
        self,
        rows: int,
        cols: int,
        prototypes: np.ndarray,
        distance: LayeredDistance,
        topology: Topology = Topology.RECTANGULAR,
    ):
        if rows <= 0 or cols <= 0:
            raise ConfigError(f"Grid dimensions must be positive, got {rows}x{cols}")
        prototypes = np.array(prototypes, dtype=np.float64)
        if prototypes.ndim != 2 or prototypes.shape[0] != rows * cols:
            raise DataError(
                f"Expected prototypes of shape ({rows * cols}, width), got {prototypes.shape}"
            )

        self.rows = rows
        self.cols = cols
        self.topology = topology
        self.distance = distance
        self.prototypes = prototypes
        self.coords = self._create_node_coordinates()
        self.label_counts: Sequence[Mapping[Any, int]] = [Counter() for _ in range(self.n_nodes)]
        self.frozen = False

    @property
    def n_nodes(self) -> int:
        return self.rows * self.cols

    @property
    def width(self) -> int:
        return self.prototypes.shape[1]

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.rows, self.cols)

    def index(self, row: int, col: int) -> int:
        return row * self.cols + col

    def row_col(self, index: int) -> Tuple[int, int]:
        return (index // self.cols, index % self.cols)

    def _create_node_coordinates(self) -> np.ndarray:
        """(row, col) position of every node, offset for hexagonal grids"""
        rows, cols = np.divmod(np.arange(self.n_nodes), self.cols)
        coords = np.column_stack([rows, cols]).astype(np.float64)
        if self.topology == Topology.HEXAGONAL:
            # Odd rows shift half a unit; rows are sqrt(3)/2 apart
            coords[:, 1] += 0.5 * (rows % 2)
            coords[:, 0] *= np.sqrt(3) / 2
        return coords

    def node_distances(self, index: int) -> np.ndarray:
        """Grid distance from node ``index`` to every node"""
        delta = np.abs(self.coords - self.coords[index])
        if self.topology == Topology.TOROIDAL:
            delta[:, 0] = np.minimum(delta[:, 0], self.rows - delta[:, 0])
            delta[:, 1] = np.minimum(delta[:, 1], self.cols - delta[:, 1])
        return np.sqrt(delta[:, 0] ** 2 + delta[:, 1] ** 2)

    def are_adjacent(self, first: int, second: int) -> bool:
        distance = self.node_distances(first)[second]
        if self.topology == Topology.HEXAGONAL:
            return bool(distance <= self.HEXAGONAL_ADJACENCY_TOLERANCE)
        return bool(distance <= np.sqrt(2))

    def distances_to(self, sample: np.ndarray) -> np.ndarray:
        """Layered distance from ``sample`` to every prototype"""
        return self.distance(self.prototypes, sample)

    def find_bmu_index(self, sample: np.ndarray) -> Tuple[int, float]:
        """Exhaustive scan; returns (index, distance) of the best matching unit"""
        distances = self.distances_to(sample)
        index = int(np.argmin(distances))
        return index, float(distances[index])

    def find_bmu(self, sample: np.ndarray) -> Tuple[int, int]:
        index, _ = self.find_bmu_index(sample)
        return self.row_col(index)

    def find_two_bmus(self, sample: np.ndarray) -> Tuple[int, int]:
        """Indices of the best and second best matching units"""
        distances = self.distances_to(sample)
        order = np.argsort(distances, kind="stable")
        return int(order[0]), int(order[min(1, len(order) - 1)])

    def _check_mutable(self) -> None:
        if self.frozen:
            raise StateError("Grid is frozen and cannot be modified")

    def update(self, sample: np.ndarray, alpha: float, influence: np.ndarray) -> None:
        """
        Move every node with positive influence toward ``sample``.

        Each node's prototype moves by ``alpha * influence * (sample - prototype)``
        on every dimension where the sample is not missing.
        """
        self._check_mutable()
        strength = alpha * influence
        affected = np.flatnonzero(strength > 0)
        if affected.size == 0:
            return
        delta = sample - self.prototypes[affected]
        delta = np.where(np.isnan(delta), 0.0, delta)
        self.prototypes[affected] += strength[affected, np.newaxis] * delta

    def decay_toward_mean(self, decay: float) -> None:
        """Pull every prototype toward the grid mean by ``decay``"""
        self._check_mutable()
        if decay <= 0:
            return
        mean = self.prototypes.mean(axis=0)
        self.prototypes -= decay * (self.prototypes - mean)

    def record_label(self, index: int, label: Any) -> None:
        self._check_mutable()
        if label is not None:
            self.label_counts[index][label] += 1

    def label_majority(self) -> List[Optional[Any]]:
        """Most frequent label per node, None where no label was recorded"""
        return [
            max(counts, key=counts.get) if counts else None
            for counts in self.label_counts
        ]

    def get_weights(self) -> np.ndarray:
        """Prototypes in grid format (rows, cols, width)"""
        return self.prototypes.reshape(self.rows, self.cols, self.width)

    def snapshot(self, step: int, feature_names: List[str]) -> GridSnapshot:
        prototypes = self.get_weights().copy()
        prototypes.setflags(write=False)
        majority = None
        if any(self.label_counts):
            flat = self.label_majority()
            majority = [flat[r * self.cols:(r + 1) * self.cols] for r in range(self.rows)]
        return GridSnapshot(
            step=step,
            rows=self.rows,
            cols=self.cols,
            prototypes=prototypes,
            feature_names=list(feature_names),
            label_majority=majority,
        )

    def copy(self) -> "Grid":
        grid = Grid(self.rows, self.cols, self.prototypes, self.distance, self.topology)
        grid.label_counts = [Counter(counts) for counts in self.label_counts]
        return grid

    def freeze(self) -> "Grid":
        """Make the grid permanently read-only"""
        self.frozen = True
        self.prototypes.setflags(write=False)
        self.coords.setflags(write=False)
        self.label_counts = tuple(
            MappingProxyType(dict(counts)) for counts in self.label_counts
        )
        return self


def _column_ranges(samples: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Per-dimension (min, max) over non-missing values; 0 for empty columns"""
    present = ~np.isnan(samples)
    low = np.where(present, samples, np.inf).min(axis=0)
    high = np.where(present, samples, -np.inf).max(axis=0)
    empty = ~present.any(axis=0)
    low[empty] = 0.0
    high[empty] = 0.0
    return low, high


def _fill_missing(samples: np.ndarray) -> np.ndarray:
    """Replace missing values by their column mean"""
    present = ~np.isnan(samples)
    counts = present.sum(axis=0)
    sums = np.where(present, samples, 0.0).sum(axis=0)
    means = np.divide(sums, counts, out=np.zeros_like(sums), where=counts > 0)
    return np.where(present, samples, means)


def _linear_fractions(rows: int, cols: int, width: int) -> np.ndarray:
    """Gradient across the grid: dim 0 follows rows, dim 1 cols, others the diagonal"""
    node_rows, node_cols = np.divmod(np.arange(rows * cols), cols)
    # Create gradients that work even with rows=1 or cols=1
    u = node_rows / (rows - 1) if rows > 1 else np.full(rows * cols, 0.5)
    v = node_cols / (cols - 1) if cols > 1 else np.full(rows * cols, 0.5)

    fractions = np.zeros((rows * cols, width))
    for f in range(width):
        if f == 0:
            fractions[:, f] = u
        elif f == 1:
            fractions[:, f] = v
        else:
            fractions[:, f] = (u + v + f * 0.1) / (2 + f * 0.1)
    return fractions


def _pca_prototypes(rows: int, cols: int, samples: np.ndarray) -> np.ndarray:
    """Span the grid along the leading principal components of the samples"""
    filled = _fill_missing(samples)
    n_components = min(2, filled.shape[1], len(filled))
    pca = PCA(n_components=n_components, svd_solver="full")
    projected = pca.fit_transform(filled)
    low, high = projected.min(axis=0), projected.max(axis=0)

    if n_components < 2:
        points = np.linspace(low[0], high[0], rows * cols).reshape(-1, 1)
    else:
        row_values = np.linspace(low[0], high[0], rows)
        col_values = np.linspace(low[1], high[1], cols)
        points = np.array([[row_values[r], col_values[c]] for r in range(rows) for c in range(cols)])
    return pca.inverse_transform(points)


def initialize_prototypes(
    strategy: InitStrategy,
    rows: int,
    cols: int,
    samples: np.ndarray,
    rng: np.random.RandomState,
) -> np.ndarray:
    """Initial prototype matrix of shape (rows * cols, width)"""
    n_nodes = rows * cols
    width = samples.shape[1]
    low, high = _column_ranges(samples)

    if strategy == InitStrategy.RANDOM:
        return low + rng.random((n_nodes, width)) * (high - low)

    if strategy == InitStrategy.SAMPLE:
        indices = rng.choice(len(samples), n_nodes, replace=True)
        return _fill_missing(samples)[indices].copy()

    if strategy == InitStrategy.PCA and len(samples) >= 2 and width >= 1:
        return _pca_prototypes(rows, cols, samples)

    # LINEAR, and PCA without enough data
    return low + _linear_fractions(rows, cols, width) * (high - low)
