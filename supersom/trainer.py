"""
Online Super-SOM training loop
"""

import time
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING

import numpy as np
import pandas as pd
import structlog
from tqdm import tqdm

from .config import SOMConfig, SamplingMode
from .distance import LayeredDistance
from .exceptions import DataError, StateError
from .grid import Grid, GridSnapshot, initialize_prototypes
from .layers import LayerSet, TabularData
from .model import Model
from .neighborhood import get_neighborhood_function, with_cutoff
from .observability import log_model_finalized, log_training_metrics, trace_operation

if TYPE_CHECKING:
    from .callbacks import Callback


logger = structlog.get_logger(__name__)


class TrainerState(Enum):
    """Lifecycle of a training run"""

    INITIALIZED = "initialized"
    TRAINING = "training"
    FINISHED = "finished"


class Trainer:
    """
    Owns the grid, schedules and random generator of one training run.

    One call to ``step`` presents one sample to the grid. The horizon is
    ``epochs * n_samples`` steps or ``episodes`` steps; every schedule is
    evaluated at the global progress ``t / horizon``.
    """

    def __init__(
        self,
        config: SOMConfig,
        layers: LayerSet,
        samples: np.ndarray,
        labels: Optional[Sequence[Any]] = None,
        verbose: bool = False,
    ):
        """
        Initialize a training run

        Args:
            config: Validated SOMConfig
            layers: Fitted LayerSet matching ``config.layers``
            samples: Encoded sample matrix of shape (n_samples, layers.width)
            labels: Optional label per sample, recorded on its best matching node
            verbose: Whether to show a progress bar
        """
        if not layers.fitted:
            raise StateError("Layers must be fitted before training")
        if [layer.name for layer in layers] != list(config.layer_names):
            raise DataError(
                f"Layers {[layer.name for layer in layers]} do not match "
                f"configured layers {list(config.layer_names)}"
            )

        self.config = config
        self.layers = layers
        self.verbose = verbose
        self.samples = layers.check_samples(samples)
        self.n_samples = len(self.samples)
        if self.n_samples == 0:
            raise DataError("Input data is empty")
        self.labels = self._check_labels(labels)

        if config.epochs is not None:
            self.total_steps = config.epochs * self.n_samples
        else:
            self.total_steps = config.episodes

        if config.seed is not None:
            self.rng = np.random.RandomState(config.seed)
        else:
            self.rng = np.random.RandomState()

        self.kernel = get_neighborhood_function(config.neighborhood)
        if config.cutoff_factor is not None:
            self.kernel = with_cutoff(self.kernel, config.cutoff_factor)

        prototypes = initialize_prototypes(
            config.init_strategy, config.rows, config.cols, self.samples, self.rng
        )
        self.grid: Optional[Grid] = Grid(
            config.rows,
            config.cols,
            prototypes,
            LayeredDistance.from_layers(layers),
            config.topology,
        )

        self.state = TrainerState.INITIALIZED
        self.step_count = 0
        self.stop_training = False
        self.deadline: Optional[float] = None
        self.callbacks: List["Callback"] = []
        self._finalized = False
        self._order: Optional[np.ndarray] = None
        self._pass_error = 0.0
        self._pass_steps = 0

        self.metadata: Dict[str, Any] = {
            "creation_time": datetime.now().isoformat(),
            "training_history": [],
            "total_steps": 0,
            "horizon": self.total_steps,
            "n_samples": self.n_samples,
            "config": config.to_dict(),
        }

    @classmethod
    def from_frame(
        cls,
        config: SOMConfig,
        data: TabularData,
        labels: Optional[Sequence[Any]] = None,
        verbose: bool = False,
    ) -> "Trainer":
        """Fit the configured layers on ``data`` and set up a run over it"""
        layers = LayerSet.from_config(config)
        samples = layers.fit_transform(data)
        return cls(config, layers, samples, labels=labels, verbose=verbose)

    def _check_labels(self, labels: Optional[Sequence[Any]]) -> Optional[List[Any]]:
        if labels is None:
            return None
        labels = list(labels)
        if len(labels) != self.n_samples:
            raise DataError(
                f"Expected {self.n_samples} labels, got {len(labels)}"
            )
        return [None if pd.isna(label) else label for label in labels]

    @property
    def progress(self) -> float:
        return self.step_count / self.total_steps

    @property
    def finished(self) -> bool:
        return self.state == TrainerState.FINISHED

    def _check_active(self) -> None:
        if self._finalized:
            raise StateError("Trainer has been finalized; its grid belongs to the model")

    def _select_index(self, t: int) -> int:
        position = t % self.n_samples
        if self.config.sampling == SamplingMode.SEQUENTIAL:
            return position
        if self.config.sampling == SamplingMode.SHUFFLED:
            if position == 0 or self._order is None:
                self._order = self.rng.permutation(self.n_samples)
            return int(self._order[position])
        return int(self.rng.randint(self.n_samples))

    def step(self) -> int:
        """
        Apply one training step and return the index of the best matching node.

        Raises:
            StateError: if the trainer is finalized or the horizon is reached
        """
        self._check_active()
        if self.step_count >= self.total_steps:
            raise StateError(f"Training horizon of {self.total_steps} steps reached")
        self.state = TrainerState.TRAINING

        t = self.step_count
        index = self._select_index(t)
        sample = self.samples[index]

        progress = t / self.total_steps
        alpha = self.config.alpha.interpolate(progress)
        radius = self.config.radius.interpolate(progress)

        bmu, distance = self.grid.find_bmu_index(sample)
        influence = self.kernel(self.grid.node_distances(bmu), radius)
        self.grid.update(sample, alpha, influence)
        if self.labels is not None:
            self.grid.record_label(bmu, self.labels[index])

        self.step_count = t + 1
        self.metadata["total_steps"] = self.step_count
        self._pass_error += distance
        self._pass_steps += 1

        pass_complete = self.step_count % self.n_samples == 0
        if pass_complete and self.config.decay is not None:
            self.grid.decay_toward_mean(self.config.decay.interpolate(progress))
        if pass_complete or self.step_count == self.total_steps:
            self._end_pass(alpha, radius)

        interval = self.config.snapshot_interval
        if interval is not None and self.step_count % interval == 0:
            snapshot = self.snapshot()
            for callback in self.callbacks:
                callback.on_snapshot(snapshot, self)

        if self.step_count == self.total_steps:
            self.state = TrainerState.FINISHED
        return bmu

    def _end_pass(self, alpha: float, radius: float) -> None:
        epoch = -(-self.step_count // self.n_samples)
        metrics = {
            "step": self.step_count,
            "epoch": epoch,
            "qe": self._pass_error / self._pass_steps,
            "alpha": alpha,
            "radius": radius,
        }
        self._pass_error = 0.0
        self._pass_steps = 0
        self.metadata["training_history"].append(metrics)

        for callback in self.callbacks:
            callback.on_epoch_end(epoch, self, metrics)

    def set_deadline(self, seconds: float) -> None:
        """Stop training once ``seconds`` of wall-clock time have passed"""
        deadline = time.monotonic() + seconds
        if self.deadline is None or deadline < self.deadline:
            self.deadline = deadline

    def _should_stop(self) -> bool:
        if self.stop_training:
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def train(
        self,
        callbacks: Optional[List["Callback"]] = None,
        timeout: Optional[float] = None,
    ) -> "Trainer":
        """
        Run steps until the horizon is reached or training is cancelled.

        Cancellation is checked between steps only. A cancel requested while
        no run is active stops the next run before its first step. A cancelled
        run can be resumed by calling ``train`` again.

        Args:
            callbacks: List of callback objects
            timeout: Optional wall-clock budget in seconds for this call

        Returns:
            self for method chaining
        """
        self._check_active()
        self.callbacks = list(callbacks or [])
        self.deadline = None
        if timeout is not None:
            self.set_deadline(timeout)

        if self.finished:
            logger.info("Training horizon already reached", steps=self.step_count)
            self.stop_training = False
            return self

        first_step = self.step_count
        started = time.time()
        with trace_operation(
            "train", rows=self.config.rows, cols=self.config.cols, horizon=self.total_steps
        ):
            for callback in self.callbacks:
                callback.on_training_begin(self)

            iterator = range(self.step_count, self.total_steps)
            if self.verbose:
                iterator = tqdm(iterator, desc="Training Super-SOM")

            for _ in iterator:
                if self._should_stop():
                    logger.info(
                        "Training stopped", step=self.step_count, horizon=self.total_steps
                    )
                    self.stop_training = False
                    break
                self.step()

                if self.verbose and self.step_count % self.n_samples == 0:
                    last = self.metadata["training_history"][-1]
                    iterator.set_postfix(
                        {
                            "QE": f"{last['qe']:.4f}",
                            "r": f"{last['radius']:.3f}",
                            "α": f"{last['alpha']:.4f}",
                        }
                    )

            for callback in self.callbacks:
                callback.on_training_end(self)

        self.metadata["last_training"] = datetime.now().isoformat()
        log_training_metrics(
            self.config.rows,
            self.config.cols,
            time.time() - started,
            self.step_count - first_step,
        )
        return self

    def cancel(self) -> None:
        """Request training to stop before the next step"""
        self.stop_training = True

    def snapshot(self) -> GridSnapshot:
        """Read-only copy of the current grid"""
        self._check_active()
        return self.grid.snapshot(self.step_count, self.layers.feature_names)

    def _build_model(self, grid: Grid) -> Model:
        metadata = dict(self.metadata)
        metadata["training_history"] = list(self.metadata["training_history"])
        metadata["state"] = self.state.value
        return Model(grid, self.layers, self.config, metadata)

    def checkpoint(self, filepath: str) -> None:
        """Save a model of a copy of the current grid; training can continue"""
        self._check_active()
        self._build_model(self.grid.copy()).save(filepath)

    def finalize(self) -> Model:
        """
        Hand the grid over to an immutable Model.

        The trainer refuses every further step, train or finalize call.
        """
        self._check_active()
        grid, self.grid = self.grid, None
        self._finalized = True

        model = self._build_model(grid)
        log_model_finalized()
        logger.info(
            "Model finalized",
            steps=self.step_count,
            horizon=self.total_steps,
            state=self.state.value,
        )
        return model
