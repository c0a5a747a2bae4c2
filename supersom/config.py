"""
Configuration classes and enums for Super-SOM
"""

import math
import numbers
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, List, Any, Sequence, Type

from .exceptions import ConfigError
from .schedule import Schedule, DecayCurve


class Topology(Enum):
    """Grid topologies used for node-to-node distances"""

    RECTANGULAR = "rectangular"
    HEXAGONAL = "hexagonal"
    TOROIDAL = "toroidal"


class Normalization(Enum):
    """Per-layer normalization of numeric columns"""

    NONE = "none"
    GAUSS = "gauss"
    UNIT = "unit"


class DistanceMetric(Enum):
    """Per-layer segment distance"""

    SQEUCLIDEAN = "sqeuclidean"
    EUCLIDEAN = "euclidean"
    MANHATTAN = "manhattan"
    TANIMOTO = "tanimoto"


class Neighborhood(Enum):
    """Neighborhood kernels"""

    GAUSSIAN = "gaussian"
    BUBBLE = "bubble"


class SamplingMode(Enum):
    """How the trainer draws one sample per step"""

    SEQUENTIAL = "sequential"
    SHUFFLED = "shuffled"
    RANDOM = "random"


class InitStrategy(Enum):
    """Prototype initialization strategies"""

    RANDOM = "random"
    SAMPLE = "sample"
    LINEAR = "linear"
    PCA = "pca"


def _to_enum(enum_class: Type[Enum], value: Any, name: str) -> Enum:
    """Resolve a string identifier to an enum member or raise ConfigError"""
    if isinstance(value, enum_class):
        return value
    try:
        return enum_class(value)
    except ValueError:
        choices = [member.value for member in enum_class]
        raise ConfigError(
            f"Unknown {name} '{value}'. Must be one of {choices}"
        ) from None


@dataclass
class LayerSpec:
    """
    Declaration of one data layer.

    A numeric layer groups one or more numeric columns. A categorical layer
    holds exactly one column, one-hot encoded.
    """

    name: str
    columns: List[str] = field(default_factory=list)
    categorical: bool = False
    weight: float = 1.0
    normalization: Optional[Normalization] = None  # gauss / none by kind
    metric: DistanceMetric = DistanceMetric.SQEUCLIDEAN

    def __post_init__(self):
        if not self.name:
            raise ConfigError("Layer name must not be empty")
        if isinstance(self.columns, str):
            self.columns = [self.columns]
        self.columns = list(self.columns) or [self.name]

        if self.normalization is None:
            self.normalization = (
                Normalization.NONE if self.categorical else Normalization.GAUSS
            )
        self.normalization = _to_enum(
            Normalization, self.normalization, f"normalization of layer '{self.name}'"
        )
        self.metric = _to_enum(
            DistanceMetric, self.metric, f"metric of layer '{self.name}'"
        )

        if (
            not isinstance(self.weight, numbers.Real)
            or not math.isfinite(self.weight)
            or self.weight < 0
        ):
            raise ConfigError(
                f"Layer '{self.name}' weight must be a finite number >= 0, got {self.weight}"
            )
        if self.categorical:
            if len(self.columns) != 1:
                raise ConfigError(
                    f"Categorical layer '{self.name}' must have exactly one column, "
                    f"got {len(self.columns)}"
                )
            if self.normalization != Normalization.NONE:
                raise ConfigError(
                    f"Categorical layer '{self.name}' cannot use "
                    f"'{self.normalization.value}' normalization"
                )

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "columns": list(self.columns),
            "categorical": self.categorical,
            "weight": self.weight,
            "normalization": self.normalization.value,
            "metric": self.metric.value,
        }

    @classmethod
    def from_dict(cls, spec: Dict) -> "LayerSpec":
        return cls(**spec)


@dataclass
class SOMConfig:
    """Centralized configuration management for Super-SOM training"""

    # Grid shape
    rows: int
    cols: int

    # Layers, in sample-vector order
    layers: List[LayerSpec] = field(default_factory=list)

    # Training horizon: exactly one of epochs / episodes
    epochs: Optional[int] = None
    episodes: Optional[int] = None
    sampling: Optional[SamplingMode] = None  # Auto-selected from the horizon unit

    # Schedules
    alpha: Schedule = field(default_factory=lambda: Schedule(0.2, 0.01))
    radius: Optional[Schedule] = None  # Auto-calculated if None
    decay: Optional[Schedule] = None

    # Neighborhood and topology
    neighborhood: Neighborhood = Neighborhood.GAUSSIAN
    topology: Topology = Topology.RECTANGULAR
    cutoff_factor: Optional[float] = None

    # Initialization
    init_strategy: InitStrategy = InitStrategy.RANDOM

    # Output sink: snapshot every N steps
    snapshot_interval: Optional[int] = None

    # Reproducibility
    seed: Optional[int] = None

    def __post_init__(self):
        """Resolve identifiers and derived defaults, then validate"""
        self.layers = [
            layer if isinstance(layer, LayerSpec) else LayerSpec.from_dict(layer)
            for layer in self.layers
        ]
        self.neighborhood = _to_enum(Neighborhood, self.neighborhood, "neighborhood")
        self.topology = _to_enum(Topology, self.topology, "topology")
        self.init_strategy = _to_enum(InitStrategy, self.init_strategy, "init strategy")

        self.alpha = Schedule.from_value(self.alpha, "alpha")
        if self.radius is None:
            self.radius = Schedule(max(self.rows, self.cols) / 2, 0.5, name="radius")
        else:
            self.radius = Schedule.from_value(self.radius, "radius")
        if self.decay is not None:
            self.decay = Schedule.from_value(self.decay, "decay")

        if self.sampling is None:
            self.sampling = (
                SamplingMode.RANDOM if self.episodes is not None else SamplingMode.SHUFFLED
            )
        self.sampling = _to_enum(SamplingMode, self.sampling, "sampling mode")

        self.validate()

    def validate(self) -> None:
        """Reject invalid configurations before any training step runs"""
        for name in ("rows", "cols"):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ConfigError(f"Grid {name} must be a positive integer, got {value!r}")

        if not self.layers:
            raise ConfigError("At least one layer is required")
        names = [layer.name for layer in self.layers]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigError(f"Duplicate layer names: {duplicates}")

        if (self.epochs is None) == (self.episodes is None):
            raise ConfigError("Exactly one of 'epochs' or 'episodes' must be set")
        for name in ("epochs", "episodes"):
            value = getattr(self, name)
            if value is not None and (not isinstance(value, int) or value <= 0):
                raise ConfigError(f"'{name}' must be a positive integer, got {value!r}")

        self._check_range(self.alpha, 0.0, 1.0)
        self._check_range(self.radius, 0.0, None)
        if self.decay is not None:
            self._check_range(self.decay, 0.0, 1.0)

        if self.cutoff_factor is not None and not self.cutoff_factor > 0:
            raise ConfigError(f"'cutoff_factor' must be > 0, got {self.cutoff_factor}")
        if self.snapshot_interval is not None and (
            not isinstance(self.snapshot_interval, int) or self.snapshot_interval <= 0
        ):
            raise ConfigError(
                f"'snapshot_interval' must be a positive integer, got {self.snapshot_interval!r}"
            )

    @staticmethod
    def _check_range(schedule: Schedule, low: float, high: Optional[float]) -> None:
        for bound in ("start", "end"):
            value = getattr(schedule, bound)
            if value < low or (high is not None and value > high):
                upper = f", {high}]" if high is not None else ", inf)"
                raise ConfigError(
                    f"{schedule.name}.{bound} must be in [{low}{upper}, got {value}"
                )

    @property
    def layer_names(self) -> Sequence[str]:
        return [layer.name for layer in self.layers]

    def to_dict(self) -> Dict:
        """Convert config to dictionary for serialization"""
        return {
            "rows": self.rows,
            "cols": self.cols,
            "layers": [layer.to_dict() for layer in self.layers],
            "epochs": self.epochs,
            "episodes": self.episodes,
            "sampling": self.sampling.value,
            "alpha": self.alpha.to_dict(),
            "radius": self.radius.to_dict(),
            "decay": self.decay.to_dict() if self.decay is not None else None,
            "neighborhood": self.neighborhood.value,
            "topology": self.topology.value,
            "cutoff_factor": self.cutoff_factor,
            "init_strategy": self.init_strategy.value,
            "snapshot_interval": self.snapshot_interval,
            "seed": self.seed,
        }

    @classmethod
    def from_dict(cls, config_dict: Dict) -> "SOMConfig":
        """Create config from dictionary"""
        known = set(cls.__dataclass_fields__)
        unknown = set(config_dict) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {sorted(unknown)}")
        # String identifiers are resolved to enums in __post_init__
        return cls(**dict(config_dict))


__all__ = [
    "Topology",
    "Normalization",
    "DistanceMetric",
    "Neighborhood",
    "SamplingMode",
    "InitStrategy",
    "DecayCurve",
    "Schedule",
    "LayerSpec",
    "SOMConfig",
]
