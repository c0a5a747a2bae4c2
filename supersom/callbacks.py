"""
Callback system for monitoring Super-SOM training
"""

import os
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, TYPE_CHECKING

import structlog

from .grid import GridSnapshot

if TYPE_CHECKING:
    from .trainer import Trainer


logger = structlog.get_logger(__name__)


class Callback(ABC):
    """Abstract base class for callbacks"""

    @abstractmethod
    def on_training_begin(self, trainer: "Trainer") -> None:
        pass

    @abstractmethod
    def on_snapshot(self, snapshot: GridSnapshot, trainer: "Trainer") -> None:
        pass

    @abstractmethod
    def on_epoch_end(self, epoch: int, trainer: "Trainer", metrics: Dict) -> None:
        pass

    @abstractmethod
    def on_training_end(self, trainer: "Trainer") -> None:
        pass


class SnapshotCallback(Callback):
    """Forward read-only grid snapshots to a consumer, or collect them"""

    def __init__(self, consumer: Optional[Callable[[GridSnapshot], None]] = None):
        self.consumer = consumer
        self.snapshots: List[GridSnapshot] = []

    def on_training_begin(self, trainer: "Trainer") -> None:
        pass

    def on_snapshot(self, snapshot: GridSnapshot, trainer: "Trainer") -> None:
        if self.consumer is not None:
            self.consumer(snapshot)
        else:
            self.snapshots.append(snapshot)

    def on_epoch_end(self, epoch: int, trainer: "Trainer", metrics: Dict) -> None:
        pass

    def on_training_end(self, trainer: "Trainer") -> None:
        pass


class CheckpointCallback(Callback):
    """Save a model of the current grid every ``interval`` dataset passes"""

    def __init__(self, checkpoint_dir: str, interval: int = 10):
        self.checkpoint_dir = checkpoint_dir
        self.interval = interval
        os.makedirs(checkpoint_dir, exist_ok=True)

    def on_training_begin(self, trainer: "Trainer") -> None:
        pass

    def on_snapshot(self, snapshot: GridSnapshot, trainer: "Trainer") -> None:
        pass

    def on_epoch_end(self, epoch: int, trainer: "Trainer", metrics: Dict) -> None:
        if epoch % self.interval == 0:
            checkpoint_path = os.path.join(
                self.checkpoint_dir, f"checkpoint_epoch_{epoch}.pkl"
            )
            try:
                trainer.checkpoint(checkpoint_path)
                logger.info("Checkpoint saved", path=checkpoint_path)
            except (IOError, OSError) as e:
                logger.warning("Failed to save checkpoint", path=checkpoint_path, error=str(e))

    def on_training_end(self, trainer: "Trainer") -> None:
        final_path = os.path.join(self.checkpoint_dir, "final_model.pkl")
        try:
            trainer.checkpoint(final_path)
        except (IOError, OSError) as e:
            logger.warning("Failed to save final model", path=final_path, error=str(e))


class TimeoutCallback(Callback):
    """Request cancellation once a wall-clock budget is spent"""

    def __init__(self, seconds: float):
        self.seconds = seconds

    def on_training_begin(self, trainer: "Trainer") -> None:
        trainer.set_deadline(self.seconds)

    def on_snapshot(self, snapshot: GridSnapshot, trainer: "Trainer") -> None:
        pass

    def on_epoch_end(self, epoch: int, trainer: "Trainer", metrics: Dict) -> None:
        pass

    def on_training_end(self, trainer: "Trainer") -> None:
        pass
