"""
Decaying parameter schedules (learning rate, neighborhood radius, decay)
"""

import math
import numbers
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Union

from .exceptions import ConfigError


class DecayCurve(Enum):
    """Interpolation curve between the start and end value of a schedule"""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"


def _constant(start: float, end: float, progress: float) -> float:
    return start


def _linear(start: float, end: float, progress: float) -> float:
    # Weighted form keeps both endpoints exact
    return (1.0 - progress) * start + progress * end


def _exponential(start: float, end: float, progress: float) -> float:
    if progress >= 1.0:
        return end
    return start * (end / start) ** progress


_CURVES: Dict[DecayCurve, Callable[[float, float, float], float]] = {
    DecayCurve.LINEAR: _linear,
    DecayCurve.EXPONENTIAL: _exponential,
}


@dataclass(frozen=True)
class Schedule:
    """
    A scalar interpolated from ``start`` to ``end`` over training progress.

    The curve is resolved to a function once at construction, so
    ``interpolate`` does no dispatch in the training loop.

    Args:
        start: Value at progress 0
        end: Value at progress 1
        curve: Linear or exponential interpolation
        name: Parameter name used in error messages
    """

    start: float
    end: float
    curve: DecayCurve = DecayCurve.LINEAR
    name: str = field(default="schedule", compare=False)
    _fn: Callable[[float, float, float], float] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self):
        if isinstance(self.curve, str):
            try:
                object.__setattr__(self, "curve", DecayCurve(self.curve))
            except ValueError:
                raise ConfigError(
                    f"Unknown curve '{self.curve}' for {self.name}; "
                    f"expected one of {[c.value for c in DecayCurve]}"
                ) from None
        elif not isinstance(self.curve, DecayCurve):
            raise ConfigError(f"Unknown curve {self.curve!r} for {self.name}")

        for bound in ("start", "end"):
            value = getattr(self, bound)
            if not isinstance(value, numbers.Real) or not math.isfinite(value):
                raise ConfigError(f"{self.name}.{bound} must be a finite number")
            object.__setattr__(self, bound, float(value))

        if self.curve == DecayCurve.EXPONENTIAL and (
            self.start <= 0 or self.end <= 0
        ):
            raise ConfigError(
                f"Exponential {self.name} requires start > 0 and end > 0, "
                f"got start={self.start}, end={self.end}"
            )

        fn = _constant if self.start == self.end else _CURVES[self.curve]
        object.__setattr__(self, "_fn", fn)

    def interpolate(self, progress: float) -> float:
        """Value at ``progress``, clamped into [0, 1]"""
        if progress <= 0.0:
            return self.start
        if progress >= 1.0:
            return self.end
        return self._fn(self.start, self.end, progress)

    def to_dict(self) -> Dict:
        return {"start": self.start, "end": self.end, "curve": self.curve.value}

    @classmethod
    def from_value(cls, value: Union["Schedule", Dict, tuple], name: str) -> "Schedule":
        """Build a schedule from a Schedule, a dict or a (start, end, curve) tuple"""
        if isinstance(value, Schedule):
            if value.name == name:
                return value
            return cls(value.start, value.end, value.curve, name=name)
        if isinstance(value, dict):
            unknown = set(value) - {"start", "end", "curve"}
            if unknown:
                raise ConfigError(f"Unknown keys for {name}: {sorted(unknown)}")
            try:
                return cls(value["start"], value["end"], value.get("curve", "linear"), name=name)
            except KeyError as e:
                raise ConfigError(f"{name} is missing {e.args[0]!r}") from None
        if isinstance(value, (tuple, list)) and len(value) in (2, 3):
            return cls(*value, name=name)
        raise ConfigError(f"Cannot build a schedule for {name} from {value!r}")
