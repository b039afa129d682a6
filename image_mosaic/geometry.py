"""Integer boxes and 2-D affine transforms used to lay out the mosaic.

Coordinates are always ``(x, y)`` = ``(column, row)``. Array indexing goes
through :meth:`Box.slices`, which returns ``(rows, cols)`` slices.
"""
import math
from dataclasses import dataclass
from typing import Iterable

import numpy as np

from .errors import ConfigurationError
from ._typing_utils import FloatArray

# Float coordinates within this distance of an integer are snapped to it when
# converting to pixel boxes, so fitting noise never adds a spurious column.
SNAP_TOLERANCE = 1e-6

# Matrices with |det| below this are treated as singular.
SINGULAR_DET = 1e-12


@dataclass(frozen=True)
class Box:
    """Axis aligned integer rectangle, min corner inclusive, max corner exclusive."""

    min: tuple[int, int]
    max: tuple[int, int]

    @classmethod
    def from_shape(cls, shape: tuple[int, ...]) -> "Box":
        """Box covering an array of the given ``(rows, cols, ...)`` shape."""
        return cls((0, 0), (int(shape[1]), int(shape[0])))

    @classmethod
    def from_size(cls, width: int, height: int) -> "Box":
        return cls((0, 0), (int(width), int(height)))

    @classmethod
    def from_points(cls, points: Iterable[Iterable[float]]) -> "Box":
        """Smallest integer box containing all the (continuous) points."""
        pts = np.asarray(list(points), dtype=np.float64).reshape(-1, 2)
        lo = pts.min(axis=0)
        hi = pts.max(axis=0)
        return cls(
            (math.floor(lo[0] + SNAP_TOLERANCE), math.floor(lo[1] + SNAP_TOLERANCE)),
            (math.ceil(hi[0] - SNAP_TOLERANCE), math.ceil(hi[1] - SNAP_TOLERANCE)),
        )

    @property
    def width(self) -> int:
        return max(0, self.max[0] - self.min[0])

    @property
    def height(self) -> int:
        return max(0, self.max[1] - self.min[1])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def shape(self) -> tuple[int, int]:
        """Numpy ``(rows, cols)`` shape of an array covering this box."""
        return self.height, self.width

    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def corners(self) -> FloatArray:
        """The four corners as a ``(4, 2)`` float array."""
        (x0, y0), (x1, y1) = self.min, self.max
        return np.array([[x0, y0], [x1, y0], [x0, y1], [x1, y1]], dtype=np.float64)

    def intersection(self, other: "Box") -> "Box":
        lo = (max(self.min[0], other.min[0]), max(self.min[1], other.min[1]))
        hi = (min(self.max[0], other.max[0]), min(self.max[1], other.max[1]))
        # Keep empty results well formed (max never below min).
        return Box(lo, (max(lo[0], hi[0]), max(lo[1], hi[1])))

    crop = intersection

    def intersects(self, other: "Box") -> bool:
        return not self.intersection(other).is_empty()

    def union(self, other: "Box") -> "Box":
        """Grow this box to also contain ``other``."""
        if other.is_empty():
            return self
        if self.is_empty():
            return other
        return Box(
            (min(self.min[0], other.min[0]), min(self.min[1], other.min[1])),
            (max(self.max[0], other.max[0]), max(self.max[1], other.max[1])),
        )

    def translate(self, dx: int, dy: int) -> "Box":
        return Box((self.min[0] + dx, self.min[1] + dy), (self.max[0] + dx, self.max[1] + dy))

    def expand(self, margin: int) -> "Box":
        return Box(
            (self.min[0] - margin, self.min[1] - margin),
            (self.max[0] + margin, self.max[1] + margin),
        )

    def relative_to(self, origin: "Box") -> "Box":
        """This box expressed in the local coordinates of ``origin``."""
        return self.translate(-origin.min[0], -origin.min[1])

    def slices(self) -> tuple[slice, slice]:
        return slice(self.min[1], self.max[1]), slice(self.min[0], self.max[0])

    def __str__(self) -> str:
        return f"({self.min[0]}, {self.min[1]})-({self.max[0]}, {self.max[1]})"


@dataclass(frozen=True, eq=False)
class AffineTransform:
    """Maps a point ``p`` to ``matrix @ p + translation``."""

    matrix: FloatArray
    translation: FloatArray

    def __post_init__(self) -> None:
        matrix = np.array(self.matrix, dtype=np.float64).reshape(2, 2)
        translation = np.array(self.translation, dtype=np.float64).reshape(2)
        matrix.setflags(write=False)
        translation.setflags(write=False)
        object.__setattr__(self, "matrix", matrix)
        object.__setattr__(self, "translation", translation)

    @classmethod
    def identity(cls) -> "AffineTransform":
        return cls(np.eye(2), np.zeros(2))

    @classmethod
    def from_translation(cls, dx: float, dy: float) -> "AffineTransform":
        return cls(np.eye(2), np.array([dx, dy]))

    @classmethod
    def from_matrix(cls, params: FloatArray) -> "AffineTransform":
        """Build from a 3x3 homogeneous matrix (e.g. ``skimage`` ``params``)."""
        params = np.asarray(params, dtype=np.float64)
        if params.shape != (3, 3):
            raise ValueError(f"Expected a 3x3 homogeneous matrix, got shape {params.shape}")
        return cls(params[:2, :2], params[:2, 2])

    def as_matrix(self) -> FloatArray:
        params = np.eye(3)
        params[:2, :2] = self.matrix
        params[:2, 2] = self.translation
        return params

    @property
    def determinant(self) -> float:
        return float(np.linalg.det(self.matrix))

    def is_invertible(self) -> bool:
        return abs(self.determinant) > SINGULAR_DET

    def forward(self, points: FloatArray) -> FloatArray:
        """Apply to an ``(n, 2)`` array of points (or a single point)."""
        pts = np.asarray(points, dtype=np.float64)
        return pts @ self.matrix.T + self.translation

    def inverse(self) -> "AffineTransform":
        if not self.is_invertible():
            raise ConfigurationError(
                f"Affine transform is not invertible (det={self.determinant:g})"
            )
        inv = np.linalg.inv(self.matrix)
        return AffineTransform(inv, -inv @ self.translation)

    def reverse(self, points: FloatArray) -> FloatArray:
        """Apply the inverse transform to points."""
        return self.inverse().forward(points)

    def compose(self, other: "AffineTransform") -> "AffineTransform":
        """``self ∘ other``: the result applies ``other`` first, then ``self``."""
        return AffineTransform(
            self.matrix @ other.matrix,
            self.matrix @ other.translation + self.translation,
        )

    def forward_box(self, box: Box) -> Box:
        """Bounding box of the mapped corners of ``box``."""
        return Box.from_points(self.forward(box.corners()))

    def reverse_box(self, box: Box) -> Box:
        return Box.from_points(self.reverse(box.corners()))

    def allclose(self, other: "AffineTransform", atol: float = 1e-9) -> bool:
        return bool(
            np.allclose(self.matrix, other.matrix, atol=atol)
            and np.allclose(self.translation, other.translation, atol=atol)
        )

    def __repr__(self) -> str:
        return (
            f"AffineTransform(matrix={self.matrix.tolist()}, "
            f"translation={self.translation.tolist()})"
        )
