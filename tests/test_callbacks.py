"""
Tests for callback functionality
"""

import pytest
import tempfile
import os
import numpy as np
from supersom import SOMConfig, Trainer, Model, TrainerState
from supersom.callbacks import (
    Callback,
    CheckpointCallback,
    SnapshotCallback,
    TimeoutCallback,
)


class StopAfterEpoch(Callback):
    """Cancel training at the end of a given pass"""

    def __init__(self, epoch):
        self.epoch = epoch
        self.events = []

    def on_training_begin(self, trainer):
        self.events.append("begin")

    def on_snapshot(self, snapshot, trainer):
        pass

    def on_epoch_end(self, epoch, trainer, metrics):
        self.events.append(epoch)
        if epoch == self.epoch:
            trainer.cancel()

    def on_training_end(self, trainer):
        self.events.append("end")


@pytest.mark.integration
class TestSnapshotCallback:
    """Test snapshot delivery"""

    @pytest.mark.integration
    def test_snapshots_collected(self, mixed_layers, four_rows):
        config = SOMConfig(
            rows=2, cols=2, layers=mixed_layers, epochs=2, snapshot_interval=3, seed=0
        )
        callback = SnapshotCallback()
        Trainer.from_frame(config, four_rows).train(callbacks=[callback])

        assert [snapshot.step for snapshot in callback.snapshots] == [3, 6]
        for snapshot in callback.snapshots:
            assert snapshot.prototypes.shape == (2, 2, 3)
            assert snapshot.feature_names == ["x", "c:a", "c:b"]
            assert not snapshot.prototypes.flags.writeable

    @pytest.mark.integration
    def test_snapshots_are_copies(self, mixed_layers, four_rows):
        config = SOMConfig(
            rows=2, cols=2, layers=mixed_layers, epochs=2, snapshot_interval=1, seed=0
        )
        callback = SnapshotCallback()
        trainer = Trainer.from_frame(config, four_rows).train(callbacks=[callback])

        assert len(callback.snapshots) == 8
        np.testing.assert_array_equal(
            callback.snapshots[-1].prototypes, trainer.grid.get_weights()
        )
        assert not np.array_equal(
            callback.snapshots[0].prototypes, callback.snapshots[-1].prototypes
        )

    @pytest.mark.unit
    def test_consumer_receives_snapshots(self, mixed_layers, four_rows):
        config = SOMConfig(
            rows=2, cols=2, layers=mixed_layers, epochs=1, snapshot_interval=2, seed=0
        )
        received = []
        callback = SnapshotCallback(consumer=received.append)
        Trainer.from_frame(config, four_rows).train(callbacks=[callback])

        assert [snapshot.step for snapshot in received] == [2, 4]
        assert callback.snapshots == []


@pytest.mark.integration
class TestCheckpointCallback:
    """Test checkpoint callback functionality"""

    @pytest.mark.unit
    def test_checkpoint_creation(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            checkpoint_dir = os.path.join(tmpdir, "checkpoints")
            callback = CheckpointCallback(checkpoint_dir, interval=2)
            assert callback.checkpoint_dir == checkpoint_dir
            assert callback.interval == 2
            assert os.path.exists(checkpoint_dir)

    @pytest.mark.slow
    @pytest.mark.integration
    def test_checkpoint_saving(self, basic_config, sample_frame):
        with tempfile.TemporaryDirectory() as tmpdir:
            callback = CheckpointCallback(tmpdir, interval=2)
            trainer = Trainer.from_frame(basic_config, sample_frame)
            trainer.train(callbacks=[callback])

            checkpoint_files = sorted(
                f for f in os.listdir(tmpdir) if f.startswith("checkpoint_epoch_")
            )
            assert checkpoint_files == ["checkpoint_epoch_2.pkl"]

            final_path = os.path.join(tmpdir, "final_model.pkl")
            assert os.path.exists(final_path)
            final = Model.load(final_path)
            np.testing.assert_array_equal(final.get_weights(), trainer.grid.get_weights())

            # Checkpointing copies the grid; the trainer keeps training state
            assert not trainer.grid.frozen
            assert trainer.grid.prototypes.flags.writeable


@pytest.mark.integration
class TestCancellation:
    """Test stopping and resuming training"""

    @pytest.mark.integration
    def test_cancel_and_resume(self, basic_config, sample_frame):
        callback = StopAfterEpoch(1)
        trainer = Trainer.from_frame(basic_config, sample_frame)
        trainer.train(callbacks=[callback])

        assert trainer.step_count == 40
        assert trainer.state == TrainerState.TRAINING
        assert callback.events == ["begin", 1, "end"]

        trainer.train()
        assert trainer.step_count == 120
        assert trainer.finished

    @pytest.mark.integration
    def test_resumed_run_matches_uninterrupted_run(self, basic_config, sample_frame):
        interrupted = Trainer.from_frame(basic_config, sample_frame)
        interrupted.train(callbacks=[StopAfterEpoch(2)])
        interrupted.train()

        uninterrupted = Trainer.from_frame(basic_config, sample_frame).train()
        assert np.array_equal(interrupted.grid.prototypes, uninterrupted.grid.prototypes)

    @pytest.mark.integration
    def test_finalize_after_cancel(self, basic_config, sample_frame):
        trainer = Trainer.from_frame(basic_config, sample_frame)
        trainer.train(callbacks=[StopAfterEpoch(1)])
        model = trainer.finalize()

        assert model.metadata["total_steps"] == 40
        assert model.metadata["state"] == "training"

    @pytest.mark.unit
    def test_timeout_callback(self, trainer):
        trainer.train(callbacks=[TimeoutCallback(0)])
        assert trainer.step_count == 0

    @pytest.mark.unit
    def test_generous_timeout_completes(self, four_row_config, four_rows):
        trainer = Trainer.from_frame(four_row_config, four_rows)
        trainer.train(callbacks=[TimeoutCallback(60)])
        assert trainer.finished
