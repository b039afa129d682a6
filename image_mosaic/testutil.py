import contextlib
import pathlib
import tempfile
from dataclasses import dataclass
from typing import Generator, Optional, Sequence

import numpy as np
import tifffile
from scipy.ndimage import gaussian_filter

from .raster import GDAL_NODATA_TAG, RasterPatch

PARAMETERS_FIXTURE_FILE = (
    pathlib.Path(__file__).parent.parent
    / "test_fixtures"
    / "parameters_test"
    / "parameters.json"
)


def textured_field(height: int, width: int, seed: int = 0, sigma: float = 2.0) -> np.ndarray:
    """Smoothed noise in [0, 1000], with enough structure for feature detection."""
    rng = np.random.default_rng(seed)
    field = gaussian_filter(rng.random((height, width)), sigma=sigma)
    field -= field.min()
    return field / field.max() * 1000.0


def gradient_field(height: int, width: int) -> np.ndarray:
    """Values that differ at every pixel: ``1 + row * width + col``."""
    return np.arange(1, height * width + 1, dtype=np.float64).reshape(height, width)


@dataclass
class GridCorrespondenceFinder:
    """Exact correspondences for images offset by a known integer shift.

    Returns the same grid of points in both patches, moved so that the points
    of B land on the points of A under the shift ``(dx, dy)`` from B to A.
    """

    dx: int
    dy: int = 0
    spacing: int = 7

    def find(self, patch_a: RasterPatch, patch_b: RasterPatch) -> tuple[np.ndarray, np.ndarray]:
        # Points in A's image frame that also lie in B's strip.
        overlap_min_x = max(patch_a.box.min[0], patch_b.box.min[0] + self.dx)
        overlap_max_x = min(patch_a.box.max[0], patch_b.box.max[0] + self.dx)
        overlap_min_y = max(patch_a.box.min[1], patch_b.box.min[1] + self.dy)
        overlap_max_y = min(patch_a.box.max[1], patch_b.box.max[1] + self.dy)
        xs, ys = np.meshgrid(
            np.arange(overlap_min_x, overlap_max_x, self.spacing, dtype=np.float64),
            np.arange(overlap_min_y, overlap_max_y, self.spacing, dtype=np.float64),
        )
        points = np.stack([xs.ravel(), ys.ravel()], axis=1)
        local_a = points - np.asarray(patch_a.box.min)
        local_b = points - np.asarray([self.dx, self.dy]) - np.asarray(patch_b.box.min)
        return local_a, local_b


class NoCorrespondenceFinder:
    def find(self, patch_a: RasterPatch, patch_b: RasterPatch) -> tuple[np.ndarray, np.ndarray]:
        return np.empty((0, 2)), np.empty((0, 2))


def write_tiff_image(
    path: pathlib.Path, image: np.ndarray, nodata: Optional[float] = None, tile: int = 32
) -> None:
    """Write a tiled TIFF the way GDAL would, with the nodata tag if given."""
    extratags = []
    if nodata is not None:
        extratags.append((GDAL_NODATA_TAG, 2, 0, str(nodata), True))
    tifffile.imwrite(path, image, tile=(tile, tile), photometric="minisblack", extratags=extratags)


@contextlib.contextmanager
def temporary_tiff_images(
    images: Sequence[np.ndarray],
    nodata: Optional[float] = None,
    name: str = "image_inputs",
) -> Generator[list[str], None, None]:
    """Write ``images`` as TIFFs in a temporary directory and yield their paths."""
    with tempfile.TemporaryDirectory() as d:
        base_dir = pathlib.Path(d) / name
        base_dir.mkdir(parents=True)
        paths = []
        for i, image in enumerate(images):
            path = base_dir / f"strip_{i}.tif"
            write_tiff_image(path, image, nodata=nodata)
            paths.append(str(path))
        yield paths
