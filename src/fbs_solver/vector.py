"""
Fixed-size state vector for the ODE systems.

The vector is immutable: arithmetic returns new vectors, so a vector stored in
a trajectory can never change after the step that produced it.
"""

import operator
from typing import Iterable, Iterator

import numpy as np
from numpy.typing import NDArray


class StateVector:
    """
    Small numeric tuple with elementwise arithmetic.

    Parameters
    ----------
    values : iterable of float
        Components of the vector. The length fixes the dimension.

    Examples
    --------
    >>> y = StateVector([1.0, 1.0, 0.02, 0.0, 4e-4])
    >>> (y + 0.5 * y)[0]
    1.5
    """

    __slots__ = ("_data",)

    def __init__(self, values: Iterable[float]):
        data = np.array(values, dtype=np.float64)
        if data.ndim != 1:
            raise ValueError(f"StateVector needs a flat sequence, got shape {data.shape}")
        data.flags.writeable = False
        self._data = data

    @classmethod
    def _wrap(cls, data: NDArray[np.float64]) -> "StateVector":
        # internal constructor for arrays that are not shared with anyone else
        vec = cls.__new__(cls)
        data.flags.writeable = False
        vec._data = data
        return vec

    @property
    def array(self) -> NDArray[np.float64]:
        """Read-only view of the components."""
        return self._data

    def __len__(self) -> int:
        return self._data.shape[0]

    def __iter__(self) -> Iterator[float]:
        return iter(self._data.tolist())

    def __getitem__(self, index: int) -> float:
        i = operator.index(index)
        if not 0 <= i < self._data.shape[0]:
            raise IndexError(f"index {index} out of range for StateVector of size {len(self)}")
        return float(self._data[i])

    def _check_size(self, other: "StateVector") -> None:
        if len(other) != len(self):
            raise ValueError(f"size mismatch: {len(self)} != {len(other)}")

    def __add__(self, other: "StateVector") -> "StateVector":
        if not isinstance(other, StateVector):
            return NotImplemented
        self._check_size(other)
        return StateVector._wrap(self._data + other._data)

    def __sub__(self, other: "StateVector") -> "StateVector":
        if not isinstance(other, StateVector):
            return NotImplemented
        self._check_size(other)
        return StateVector._wrap(self._data - other._data)

    def __mul__(self, scalar: float) -> "StateVector":
        if isinstance(scalar, StateVector):
            return NotImplemented
        return StateVector._wrap(self._data * float(scalar))

    __rmul__ = __mul__

    def __truediv__(self, scalar: float) -> "StateVector":
        if isinstance(scalar, StateVector):
            return NotImplemented
        return StateVector._wrap(self._data / float(scalar))

    def __neg__(self) -> "StateVector":
        return StateVector._wrap(-self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StateVector):
            return NotImplemented
        return bool(np.array_equal(self._data, other._data))

    def __hash__(self) -> int:
        return hash(self._data.tobytes())

    def __repr__(self) -> str:
        values = ", ".join(f"{v:.6g}" for v in self._data)
        return f"StateVector([{values}])"

    def has_nan(self) -> bool:
        """True if any component is NaN."""
        return bool(np.isnan(self._data).any())

    def is_finite(self) -> bool:
        """True if every component is finite (no NaN, no inf)."""
        return bool(np.isfinite(self._data).all())

    def replace(self, index: int, value: float) -> "StateVector":
        """Return a copy with component ``index`` set to ``value``."""
        self[index]  # bounds check
        data = self._data.copy()
        data[index] = value
        return StateVector._wrap(data)


def is_nan(vec: StateVector) -> bool:
    """Module-level NaN predicate, see :meth:`StateVector.has_nan`."""
    return vec.has_nan()
