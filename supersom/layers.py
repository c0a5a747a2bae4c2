"""
Data layers: per-column normalization and encoding of tabular input
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .config import LayerSpec, Normalization, SOMConfig
from .exceptions import DataError, StateError, UnknownCategory


TabularData = Union[pd.DataFrame, Mapping[str, Sequence[Any]], Sequence[Mapping[str, Any]]]


def as_frame(data: TabularData) -> pd.DataFrame:
    """Coerce already-parsed tabular input to a DataFrame"""
    if isinstance(data, pd.DataFrame):
        return data
    try:
        return pd.DataFrame(data)
    except (TypeError, ValueError) as e:
        raise DataError(f"Cannot interpret input as a table: {e}") from e


class Layer(ABC):
    """
    One named data layer.

    Fitted once over the full dataset; transform maps raw columns to the
    layer's encoded segment of the sample vector.
    """

    categorical = False

    def __init__(self, spec: LayerSpec):
        self.spec = spec
        self._fitted = False

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def columns(self) -> List[str]:
        return self.spec.columns

    @property
    def weight(self) -> float:
        return self.spec.weight

    @property
    def fitted(self) -> bool:
        return self._fitted

    @property
    @abstractmethod
    def width(self) -> int:
        """Number of encoded dimensions"""

    @property
    @abstractmethod
    def feature_names(self) -> List[str]:
        """Names of the encoded dimensions"""

    def fit(self, frame: pd.DataFrame) -> "Layer":
        if self._fitted:
            raise StateError(f"Layer '{self.name}' is already fitted")
        self._check_columns(frame)
        self._fit(frame)
        self._fitted = True
        return self

    def transform(self, frame: pd.DataFrame) -> np.ndarray:
        self._check_fitted()
        self._check_columns(frame)
        return self._transform(frame)

    @abstractmethod
    def _fit(self, frame: pd.DataFrame) -> None:
        pass

    @abstractmethod
    def _transform(self, frame: pd.DataFrame) -> np.ndarray:
        pass

    @abstractmethod
    def inverse_transform(self, segment: np.ndarray) -> np.ndarray:
        """Map an encoded segment matrix back to original units"""

    def _check_fitted(self) -> None:
        if not self._fitted:
            raise StateError(f"Layer '{self.name}' has not been fitted yet. Call fit() first.")

    def _check_columns(self, frame: pd.DataFrame) -> None:
        missing = [col for col in self.columns if col not in frame.columns]
        if missing:
            raise DataError(f"Layer '{self.name}' is missing columns {missing}")

    def to_dict(self) -> Dict:
        self._check_fitted()
        return {"spec": self.spec.to_dict(), "params": self._params()}

    @abstractmethod
    def _params(self) -> Dict:
        pass

    @abstractmethod
    def _load_params(self, params: Dict) -> None:
        pass

    @staticmethod
    def from_dict(state: Dict) -> "Layer":
        layer = make_layer(LayerSpec.from_dict(state["spec"]))
        layer._load_params(state["params"])
        layer._fitted = True
        return layer


class NumericLayer(Layer):
    """Numeric columns with none / gauss / unit normalization"""

    def __init__(self, spec: LayerSpec):
        super().__init__(spec)
        self.offsets = np.zeros(len(spec.columns))
        self.scales = np.ones(len(spec.columns))

    @property
    def width(self) -> int:
        return len(self.columns)

    @property
    def feature_names(self) -> List[str]:
        return list(self.columns)

    def _column_values(self, frame: pd.DataFrame, column: str) -> np.ndarray:
        series = frame[column]
        converted = pd.to_numeric(series, errors="coerce")
        invalid = converted.isna() & series.notna()
        if invalid.any():
            row = invalid.idxmax()
            raise DataError(
                f"Non-numeric value {series[row]!r} in column '{column}' "
                f"of layer '{self.name}' at row {row}"
            )
        values = converted.to_numpy(dtype=np.float64)
        infinite = np.isinf(values)
        if infinite.any():
            row = series.index[int(np.argmax(infinite))]
            raise DataError(
                f"Infinite value in column '{column}' of layer '{self.name}' at row {row}"
            )
        return values

    def _fit(self, frame: pd.DataFrame) -> None:
        norm = self.spec.normalization
        for i, column in enumerate(self.columns):
            values = self._column_values(frame, column)
            present = values[~np.isnan(values)]
            offset, scale = 0.0, 1.0

            if norm == Normalization.GAUSS and len(present) >= 2:
                std = float(np.std(present, ddof=1))
                if std > 0:
                    offset, scale = float(np.mean(present)), std
            elif norm == Normalization.UNIT and len(present) > 0:
                low, high = float(np.min(present)), float(np.max(present))
                if high > low:
                    offset, scale = low, high - low

            # Zero spread: identity, the values pass through unchanged
            self.offsets[i] = offset
            self.scales[i] = scale

    def _transform(self, frame: pd.DataFrame) -> np.ndarray:
        raw = np.column_stack(
            [self._column_values(frame, column) for column in self.columns]
        ).reshape(len(frame), self.width)
        return (raw - self.offsets) / self.scales

    def inverse_transform(self, segment: np.ndarray) -> np.ndarray:
        self._check_fitted()
        return np.asarray(segment, dtype=np.float64) * self.scales + self.offsets

    def _params(self) -> Dict:
        return {"offsets": self.offsets.tolist(), "scales": self.scales.tolist()}

    def _load_params(self, params: Dict) -> None:
        self.offsets = np.asarray(params["offsets"], dtype=np.float64)
        self.scales = np.asarray(params["scales"], dtype=np.float64)


def _category_key(value: Any) -> str:
    """String form of a category; whole-number floats share the integer's key"""
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value)


class CategoricalLayer(Layer):
    """Single categorical column, one-hot encoded over the categories seen at fit"""

    categorical = True

    def __init__(self, spec: LayerSpec):
        super().__init__(spec)
        self.categories: List[str] = []
        self._codes: Dict[str, int] = {}

    @property
    def column(self) -> str:
        return self.columns[0]

    @property
    def width(self) -> int:
        return len(self.categories)

    @property
    def feature_names(self) -> List[str]:
        return [f"{self.column}:{category}" for category in self.categories]

    def _fit(self, frame: pd.DataFrame) -> None:
        series = frame[self.column]
        present = series[series.notna()]
        self._set_categories(sorted({_category_key(value) for value in present}))

    def _set_categories(self, categories: List[str]) -> None:
        self.categories = list(categories)
        self._codes = {category: code for code, category in enumerate(self.categories)}

    def _transform(self, frame: pd.DataFrame) -> np.ndarray:
        series = frame[self.column]
        encoded = np.zeros((len(series), self.width), dtype=np.float64)
        for i, (row, value) in enumerate(series.items()):
            if pd.isna(value):
                encoded[i, :] = np.nan
                continue
            code = self._codes.get(_category_key(value))
            if code is None:
                raise UnknownCategory(self.name, value, row)
            encoded[i, code] = 1.0
        return encoded

    def inverse_transform(self, segment: np.ndarray) -> np.ndarray:
        self._check_fitted()
        return np.asarray(segment, dtype=np.float64)

    def to_classes(self, segment: np.ndarray) -> List[Optional[str]]:
        """Arg-max category per row; None where the segment is missing"""
        self._check_fitted()
        segment = np.atleast_2d(np.asarray(segment, dtype=np.float64))
        classes: List[Optional[str]] = []
        for values in segment:
            if values.size == 0 or np.all(np.isnan(values)):
                classes.append(None)
            else:
                classes.append(self.categories[int(np.nanargmax(values))])
        return classes

    def _params(self) -> Dict:
        return {"categories": list(self.categories)}

    def _load_params(self, params: Dict) -> None:
        self._set_categories(params["categories"])


def make_layer(spec: LayerSpec) -> Layer:
    """Resolve a layer declaration to its concrete layer type"""
    return CategoricalLayer(spec) if spec.categorical else NumericLayer(spec)


class LayerSet:
    """Ordered layers and their slices into the sample vector"""

    def __init__(self, specs: Sequence[LayerSpec]):
        self.layers: List[Layer] = [make_layer(spec) for spec in specs]
        self.slices: List[slice] = []
        self._by_name = {layer.name: layer for layer in self.layers}
        if len(self._by_name) != len(self.layers):
            raise DataError("Layer names must be unique")

    @classmethod
    def from_config(cls, config: SOMConfig) -> "LayerSet":
        return cls(config.layers)

    def __iter__(self):
        return iter(self.layers)

    def __len__(self) -> int:
        return len(self.layers)

    def __getitem__(self, name: str) -> Layer:
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"No layer named '{name}'") from None

    @property
    def fitted(self) -> bool:
        return all(layer.fitted for layer in self.layers)

    @property
    def width(self) -> int:
        return sum(layer.width for layer in self.layers)

    @property
    def feature_names(self) -> List[str]:
        return [name for layer in self.layers for name in layer.feature_names]

    def slice_of(self, name: str) -> slice:
        return self.slices[self.layers.index(self[name])]

    def _compute_slices(self) -> None:
        self.slices = []
        start = 0
        for layer in self.layers:
            self.slices.append(slice(start, start + layer.width))
            start += layer.width

    def fit(self, data: TabularData) -> "LayerSet":
        frame = as_frame(data)
        if len(frame) == 0:
            raise DataError("Input data is empty")
        for layer in self.layers:
            layer.fit(frame)
        self._compute_slices()
        return self

    def transform(self, data: TabularData) -> np.ndarray:
        """Encode every row into a sample vector of width ``self.width``"""
        frame = as_frame(data)
        segments = [layer.transform(frame) for layer in self.layers]
        return np.hstack(segments) if segments else np.empty((len(frame), 0))

    def fit_transform(self, data: TabularData) -> np.ndarray:
        frame = as_frame(data)
        return self.fit(frame).transform(frame)

    def check_samples(self, samples: np.ndarray) -> np.ndarray:
        """Validate an already-encoded sample matrix against the layer widths"""
        samples = np.asarray(samples, dtype=np.float64)
        if samples.ndim == 1:
            samples = samples.reshape(1, -1)
        if samples.ndim != 2:
            raise DataError(f"Samples must be a 2D array, got {samples.ndim}D")
        if samples.shape[1] != self.width:
            raise DataError(
                f"Expected samples of width {self.width} for layers "
                f"{[layer.name for layer in self.layers]}, got {samples.shape[1]}"
            )
        if np.isinf(samples).any():
            row = int(np.argmax(np.isinf(samples).any(axis=1)))
            raise DataError(f"Samples contain infinite values at row {row}")
        return samples

    def to_dict(self) -> Dict:
        return {"layers": [layer.to_dict() for layer in self.layers]}

    @classmethod
    def from_dict(cls, state: Dict) -> "LayerSet":
        layers = [Layer.from_dict(layer_state) for layer_state in state["layers"]]
        layer_set = cls([layer.spec for layer in layers])
        layer_set.layers = layers
        layer_set._by_name = {layer.name: layer for layer in layers}
        layer_set._compute_slices()
        return layer_set
