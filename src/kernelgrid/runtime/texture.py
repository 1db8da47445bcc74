"""NumPy-backed texture: an array that knows its own grid dimensions."""

from typing import Any, Optional, Tuple

import numpy as np

from .dimensions import dimensions_of_array


class Texture:
    """
    Dense data handed between kernels.

    `dimensions` are in grid order (x first), the reverse of the numpy
    shape. Indexing reads the underlying array, so kernels can use a
    texture wherever they would use an array.
    """

    def __init__(self, data: Any, dimensions: Optional[Tuple[int, ...]] = None):
        self._data = np.asarray(data)
        self.dimensions = tuple(dimensions) if dimensions is not None else dimensions_of_array(self._data)

    def to_array(self) -> np.ndarray:
        return self._data.copy()

    def __getitem__(self, index: Any) -> Any:
        return self._data[index]

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Texture(dimensions={self.dimensions})"
