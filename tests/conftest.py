"""
Pytest configuration and fixtures for Super-SOM tests
"""

import pytest
import numpy as np
import pandas as pd
from supersom import (
    SOMConfig,
    LayerSpec,
    LayerSet,
    Schedule,
    Trainer,
    InitStrategy,
    SamplingMode,
    Neighborhood,
)


@pytest.fixture
def four_rows():
    """Two well separated groups of two rows, one numeric and one categorical column"""
    return pd.DataFrame({"x": [0.0, 1.0, 10.0, 11.0], "c": ["a", "a", "b", "b"]})


@pytest.fixture
def mixed_layers():
    """Layer declarations matching ``four_rows``"""
    return [
        LayerSpec("x", normalization="gauss"),
        LayerSpec("c", categorical=True),
    ]


@pytest.fixture
def four_row_config(mixed_layers):
    """2x2 grid, one deterministic pass over the four rows"""
    return SOMConfig(
        rows=2,
        cols=2,
        layers=mixed_layers,
        epochs=1,
        sampling=SamplingMode.SEQUENTIAL,
        init_strategy=InitStrategy.LINEAR,
        alpha=Schedule(0.5, 0.01),
        radius=Schedule(1.0, 0.1),
        neighborhood=Neighborhood.GAUSSIAN,
    )


@pytest.fixture
def sample_frame():
    """Generate a mixed-type table for testing"""
    rng = np.random.RandomState(42)
    return pd.DataFrame(
        {
            "a": rng.normal(0, 1, 40),
            "b": rng.uniform(10, 20, 40),
            "kind": rng.choice(["red", "green", "blue"], 40),
        }
    )


@pytest.fixture
def sample_layers():
    """Layer declarations matching ``sample_frame``"""
    return [
        LayerSpec("num", columns=["a", "b"], normalization="gauss"),
        LayerSpec("kind", categorical=True, weight=0.5),
    ]


@pytest.fixture
def basic_config(sample_layers):
    """Basic Super-SOM configuration for testing"""
    return SOMConfig(rows=4, cols=3, layers=sample_layers, epochs=3, seed=42)


@pytest.fixture
def fitted_layers(sample_layers, sample_frame):
    """LayerSet fitted on ``sample_frame``"""
    return LayerSet(sample_layers).fit(sample_frame)


@pytest.fixture
def trainer(basic_config, sample_frame):
    """Untrained trainer over ``sample_frame``"""
    return Trainer.from_frame(basic_config, sample_frame)


@pytest.fixture
def trained_model(basic_config, sample_frame):
    """Model finalized after a full training run"""
    return Trainer.from_frame(basic_config, sample_frame).train().finalize()
