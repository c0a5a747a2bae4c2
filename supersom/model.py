"""
Immutable trained Super-SOM and read-only best-match queries
"""

import copy
import pickle
from types import MappingProxyType
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd
import structlog

from .config import SOMConfig
from .distance import LayeredDistance
from .exceptions import DataError, StateError, UnknownCategory
from .grid import Grid
from .layers import CategoricalLayer, LayerSet, TabularData, as_frame
from .observability import log_query_metrics, log_unknown_category


logger = structlog.get_logger(__name__)


class Model:
    """
    Frozen grid plus the layer and schedule configuration it was trained with.

    Attribute assignment and grid mutation raise StateError; queries never
    change the model.
    """

    def __init__(
        self,
        grid: Grid,
        layers: LayerSet,
        config: SOMConfig,
        metadata: Optional[Mapping[str, Any]] = None,
    ):
        if not grid.frozen:
            grid.freeze()
        self.grid = grid
        self.layers = copy.deepcopy(layers)
        self.config = copy.deepcopy(config)
        self.metadata = MappingProxyType(copy.deepcopy(dict(metadata or {})))
        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise StateError(f"Model is immutable; cannot set '{name}'")
        super().__setattr__(name, value)

    def __delattr__(self, name: str) -> None:
        raise StateError(f"Model is immutable; cannot delete '{name}'")

    @property
    def shape(self) -> Tuple[int, int]:
        return self.grid.shape

    @property
    def prototypes(self) -> np.ndarray:
        """Read-only prototype array of shape (rows, cols, width)"""
        return self.grid.get_weights()

    def get_weights(self) -> np.ndarray:
        """Get weights in grid format"""
        return self.grid.get_weights()

    def _encode(self, data: Union[TabularData, np.ndarray]) -> np.ndarray:
        if isinstance(data, np.ndarray):
            return self.layers.check_samples(data)
        try:
            return self.layers.transform(as_frame(data))
        except UnknownCategory as e:
            log_unknown_category(e.layer)
            logger.warning(
                "Unknown category in query", layer=e.layer, value=str(e.value), row=e.row
            )
            raise

    def query(self, row: Mapping[str, Any]) -> Tuple[int, int]:
        """
        Best matching node of one raw input row.

        Args:
            row: Mapping of column name to raw value

        Returns:
            (row, col) of the best matching node

        Raises:
            UnknownCategory: if a categorical value was not seen at fit time
        """
        sample = self._encode(pd.DataFrame([dict(row)]))[0]
        log_query_metrics()
        return self.grid.find_bmu(sample)

    def query_vector(self, sample: np.ndarray) -> Tuple[int, int]:
        """Best matching node of an already-encoded sample vector"""
        sample = self.layers.check_samples(sample)[0]
        log_query_metrics()
        return self.grid.find_bmu(sample)

    def predict(self, data: Union[TabularData, np.ndarray]) -> np.ndarray:
        """Find BMU indices for input data"""
        samples = self._encode(data)
        log_query_metrics(len(samples))
        return np.array(
            [self.grid.find_bmu_index(sample)[0] for sample in samples], dtype=np.int64
        )

    def query_frame(self, data: Union[TabularData, np.ndarray]) -> np.ndarray:
        """(row, col) of the best matching node for every input row, shape (n, 2)"""
        indices = self.predict(data)
        return np.column_stack(np.divmod(indices, self.grid.cols)).reshape(-1, 2)

    def quantization_error(self, data: Union[TabularData, np.ndarray]) -> float:
        """Mean layered distance of each sample to its best matching node"""
        samples = self._encode(data)
        if len(samples) == 0:
            raise DataError("Input data is empty")
        distances = [self.grid.find_bmu_index(sample)[1] for sample in samples]
        return float(np.mean(distances))

    def topographic_error(self, data: Union[TabularData, np.ndarray]) -> float:
        """Fraction of samples whose two best matching nodes are not adjacent"""
        samples = self._encode(data)
        if len(samples) == 0:
            raise DataError("Input data is empty")
        if self.grid.n_nodes < 2:
            return 0.0

        errors = 0
        for sample in samples:
            first, second = self.grid.find_two_bmus(sample)
            if not self.grid.are_adjacent(first, second):
                errors += 1
        return errors / len(samples)

    def denormalized_prototypes(self, layer_name: str) -> pd.DataFrame:
        """Prototype segment of one layer per node, in original units"""
        layer = self.layers[layer_name]
        segment = self.grid.prototypes[:, self.layers.slice_of(layer_name)]
        if layer.categorical:
            return pd.DataFrame(segment, columns=layer.feature_names)
        return pd.DataFrame(layer.inverse_transform(segment), columns=layer.columns)

    def node_classes(self, layer_name: str) -> List[Optional[str]]:
        """Dominant category of every node for a categorical layer"""
        layer = self.layers[layer_name]
        if not isinstance(layer, CategoricalLayer):
            raise DataError(f"Layer '{layer_name}' is not categorical")
        return layer.to_classes(self.grid.prototypes[:, self.layers.slice_of(layer_name)])

    def to_frame(self) -> pd.DataFrame:
        """
        One row per node: index, row, col, then every layer's prototype in
        original units (numeric columns) or its dominant category.
        """
        indices = np.arange(self.grid.n_nodes)
        rows, cols = np.divmod(indices, self.grid.cols)
        table = pd.DataFrame({"index": indices, "row": rows, "col": cols})
        for layer in self.layers:
            if layer.categorical:
                table[layer.column] = self.node_classes(layer.name)
            else:
                values = self.denormalized_prototypes(layer.name)
                for column in layer.columns:
                    table[column] = values[column].to_numpy()
        return table

    def assign(self, data: TabularData) -> pd.DataFrame:
        """Copy of ``data`` with the best matching node of every row appended"""
        frame = as_frame(data).copy()
        indices = self.predict(frame)
        frame["som_index"] = indices
        frame["som_row"] = indices // self.grid.cols
        frame["som_col"] = indices % self.grid.cols
        return frame

    def label_majority(self) -> List[List[Optional[Any]]]:
        """Most frequent training label per node, as rows of the grid"""
        flat = self.grid.label_majority()
        cols = self.grid.cols
        return [flat[r * cols:(r + 1) * cols] for r in range(self.grid.rows)]

    def get_info(self) -> Dict:
        """Get comprehensive information about the model"""
        return {
            "config": self.config.to_dict(),
            "metadata": copy.deepcopy(dict(self.metadata)),
            "shape": self.shape,
            "n_nodes": self.grid.n_nodes,
            "width": self.grid.width,
            "layers": [layer.name for layer in self.layers],
            "feature_names": self.layers.feature_names,
            "total_steps": self.metadata.get("total_steps", 0),
        }

    def save(self, filepath: str) -> None:
        """Save the model to file"""
        save_data = {
            "config": self.config.to_dict(),
            "layers": self.layers.to_dict(),
            "prototypes": np.array(self.grid.prototypes),
            "label_counts": [dict(counts) for counts in self.grid.label_counts],
            "metadata": copy.deepcopy(dict(self.metadata)),
        }

        try:
            with open(filepath, "wb") as f:
                pickle.dump(save_data, f)
        except (IOError, OSError) as e:
            raise IOError(f"Failed to save model to {filepath}: {e}")

        logger.info("Model saved", path=filepath)

    @classmethod
    def load(cls, filepath: str) -> "Model":
        """Load a model from file"""
        try:
            with open(filepath, "rb") as f:
                save_data = pickle.load(f)
        except (IOError, OSError) as e:
            raise IOError(f"Failed to load model from {filepath}: {e}")

        config = SOMConfig.from_dict(save_data["config"])
        layers = LayerSet.from_dict(save_data["layers"])
        grid = Grid(
            config.rows,
            config.cols,
            save_data["prototypes"],
            LayeredDistance.from_layers(layers),
            config.topology,
        )
        grid.label_counts = [Counter(counts) for counts in save_data["label_counts"]]
        return cls(grid, layers, config, save_data["metadata"])
