"""
Super-SOM Package

Self-Organizing Maps trained jointly on multiple named data layers,
numeric and categorical, with per-layer normalization, metric and weight.
"""

from .config import (
    SOMConfig,
    LayerSpec,
    Topology,
    Normalization,
    DistanceMetric,
    Neighborhood,
    SamplingMode,
    InitStrategy,
)
from .schedule import Schedule, DecayCurve
from .exceptions import SOMError, ConfigError, DataError, UnknownCategory, StateError
from .layers import LayerSet, NumericLayer, CategoricalLayer
from .distance import LayeredDistance
from .grid import Grid, GridSnapshot
from .model import Model
from .trainer import Trainer, TrainerState
from .callbacks import Callback, SnapshotCallback, CheckpointCallback, TimeoutCallback
from .observability import (
    setup_logging,
    setup_logging_from_env,
    trace_operation,
    get_metrics,
    log_training_metrics,
    log_query_metrics,
)

__version__ = "0.1.0"

__all__ = [
    "SOMConfig",
    "LayerSpec",
    "Topology",
    "Normalization",
    "DistanceMetric",
    "Neighborhood",
    "SamplingMode",
    "InitStrategy",
    "Schedule",
    "DecayCurve",
    "SOMError",
    "ConfigError",
    "DataError",
    "UnknownCategory",
    "StateError",
    "LayerSet",
    "NumericLayer",
    "CategoricalLayer",
    "LayeredDistance",
    "Grid",
    "GridSnapshot",
    "Model",
    "Trainer",
    "TrainerState",
    "Callback",
    "SnapshotCallback",
    "CheckpointCallback",
    "TimeoutCallback",
    "setup_logging",
    "setup_logging_from_env",
    "trace_operation",
    "get_metrics",
    "log_training_metrics",
    "log_query_metrics",
]
