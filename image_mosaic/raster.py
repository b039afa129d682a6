"""Read-only raster access.

The mosaic code only ever asks a raster for its extent, its nodata value and
bounded regions of it. Nothing here loads a whole image: ``ArrayRaster`` slices
an existing (possibly memory mapped, zarr or dask backed) array and
``TiffRaster`` reads regions through a zarr view of the TIFF file.
"""
import enum
import logging
import math
import pathlib
from typing import Any, NamedTuple, Optional, Protocol, Union

import numpy as np
import tifffile
import zarr

from ._typing_utils import BoolArray, FloatArray, NumArray
from .geometry import Box

logger = logging.getLogger(__name__)

# TIFF tag written by GDAL to hold the nodata value as an ASCII string.
GDAL_NODATA_TAG = 42113


class NodataPolicy(enum.Enum):
    """How a sample is compared against the image's nodata value."""

    less_or_equal = "less_or_equal"
    """Samples less than or equal to nodata are invalid."""

    equal = "equal"
    """Only samples equal to nodata are invalid."""


class RasterPatch(NamedTuple):
    """A region read from a raster, with its validity mask.

    ``box`` is the region in the raster's own pixel coordinates.
    """

    values: FloatArray
    valid: BoolArray
    box: Box


class RasterSource(Protocol):
    """What the mosaic needs from an input image."""

    name: str

    @property
    def shape(self) -> tuple[int, int]:
        """``(rows, cols)`` of the full image."""
        ...

    @property
    def nodata(self) -> float:
        ...

    def read(self, box: Box) -> RasterPatch:
        """Read the part of ``box`` that lies inside the image."""
        ...

    def close(self) -> None:
        ...


def valid_mask(
    values: NumArray, nodata: float, policy: NodataPolicy = NodataPolicy.less_or_equal
) -> BoolArray:
    """Validity of each sample given the image's nodata value. NaN is never valid."""
    values = np.asarray(values)
    valid = ~np.isnan(values)
    if nodata is None or math.isnan(nodata):
        return valid
    if policy == NodataPolicy.less_or_equal:
        return valid & (values > nodata)
    elif policy == NodataPolicy.equal:
        return valid & (values != nodata)
    else:
        raise RuntimeError(f"Unexpected NodataPolicy value: {policy}")


class ArrayRaster:
    """A raster over an array-like object already in hand.

    The array is kept by reference and only sliced, so a ``numpy.memmap``,
    zarr array or dask array stays lazy until a region is read.
    """

    def __init__(
        self,
        array: Any,
        nodata: float = math.nan,
        name: str = "<array>",
        policy: NodataPolicy = NodataPolicy.less_or_equal,
    ):
        if len(array.shape) != 2:
            raise ValueError(f"Raster must be 2-dimensional, got shape {array.shape}")
        self._array = array
        self._nodata = float(nodata) if nodata is not None else math.nan
        self.name = name
        self.policy = policy
        self.closed = False

    @property
    def shape(self) -> tuple[int, int]:
        return int(self._array.shape[0]), int(self._array.shape[1])

    @property
    def extent(self) -> Box:
        return Box.from_shape(self.shape)

    @property
    def nodata(self) -> float:
        return self._nodata

    def read(self, box: Box) -> RasterPatch:
        box = box.intersection(self.extent)
        values = np.asarray(self._array[box.slices()], dtype=np.float64)
        return RasterPatch(values, valid_mask(values, self._nodata, self.policy), box)

    def close(self) -> None:
        """Release the file (if any) behind the raster."""
        self.closed = True

    def __enter__(self) -> "ArrayRaster":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, shape={self.shape}, nodata={self._nodata})"


def _gdal_nodata(tif: tifffile.TiffFile) -> float:
    tag = tif.pages[0].tags.get(GDAL_NODATA_TAG)
    if tag is None:
        return math.nan
    try:
        return float(str(tag.value).strip("\x00 "))
    except ValueError:
        logger.warning(f"Ignoring unparseable GDAL nodata tag {tag.value!r} in {tif.filename}")
        return math.nan


def read_tiff_nodata(path: Union[str, pathlib.Path]) -> float:
    """The GDAL nodata value stored in a TIFF, or NaN if there is none."""
    with tifffile.TiffFile(path) as tif:
        return _gdal_nodata(tif)


class TiffRaster(ArrayRaster):
    """A single band of a TIFF on disk, read region by region.

    Keeps the file open until ``close`` (or the end of a ``with`` block).
    """

    def __init__(
        self,
        path: Union[str, pathlib.Path],
        band: Optional[int] = None,
        nodata: Optional[float] = None,
        policy: NodataPolicy = NodataPolicy.less_or_equal,
    ):
        self.path = pathlib.Path(path)
        self._tif = tifffile.TiffFile(self.path)
        self._store = None
        try:
            array = self._open_band(band)
            if nodata is None:
                nodata = _gdal_nodata(self._tif)
        except Exception:
            self.close()
            raise
        super().__init__(array, nodata=nodata, name=self.path.name, policy=policy)

    def _open_band(self, band: Optional[int]) -> Any:
        # Axes as tifffile reports them, e.g. "YX", "YXS" (contig) or "SYX" (planar).
        axes = self._tif.series[0].axes
        self._store = self._tif.aszarr()
        array = zarr.open(self._store, mode="r")
        if isinstance(array, zarr.Group):
            # Pyramidal TIFFs open as a group; level 0 is full resolution.
            array = array["0"]

        if len(array.shape) == 2:
            return array
        band_axes = [i for i, axis in enumerate(axes) if axis not in "YX"]
        if len(array.shape) != 3 or len(axes) != 3 or len(band_axes) != 1:
            raise ValueError(f"Unsupported TIFF layout {axes} {array.shape} in {self.path}")

        band_axis = band_axes[0]
        num_bands = array.shape[band_axis]
        # Bands are 1-based, like GDAL.
        band_idx = (band or 1) - 1
        if not 0 <= band_idx < num_bands:
            raise ValueError(f"Band {band} out of range for {self.path} with {num_bands} bands")
        return _BandView(array, band_axis, band_idx)

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
            self._store = None
        self._tif.close()
        super().close()


class _BandView:
    """Lazy 2-D view of one band of a 3-D array, wherever its band axis sits."""

    def __init__(self, array: Any, band_axis: int, band_idx: int):
        self._array = array
        self._band_axis = band_axis
        self._band_idx = band_idx
        self.shape = tuple(n for i, n in enumerate(array.shape) if i != band_axis)

    def __getitem__(self, key: tuple[slice, slice]) -> NumArray:
        index = list(key)
        index.insert(self._band_axis, self._band_idx)
        return self._array[tuple(index)]


def open_raster(
    path: Union[str, pathlib.Path],
    band: Optional[int] = None,
    nodata: Optional[float] = None,
    policy: NodataPolicy = NodataPolicy.less_or_equal,
) -> TiffRaster:
    """Open an input image. ``nodata`` overrides whatever the file declares."""
    raster = TiffRaster(path, band=band, nodata=nodata, policy=policy)
    logger.debug(f"Opened {raster}")
    return raster
