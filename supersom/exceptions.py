"""
Exception hierarchy for Super-SOM
"""

from typing import Any, Optional


class SOMError(Exception):
    """Base class for all Super-SOM errors"""


class ConfigError(SOMError, ValueError):
    """Invalid configuration, detected before any training step runs"""


class DataError(SOMError, ValueError):
    """Input data does not match the declared layers"""


class UnknownCategory(DataError):
    """A categorical value that was not observed when the layer was fitted"""

    def __init__(self, layer: str, value: Any, row: Optional[Any] = None):
        self.layer = layer
        self.value = value
        self.row = row
        location = f" at row {row}" if row is not None else ""
        super().__init__(
            f"Unknown category {value!r} for layer '{layer}'{location}"
        )


class StateError(SOMError, RuntimeError):
    """Operation not allowed in the current lifecycle state"""
