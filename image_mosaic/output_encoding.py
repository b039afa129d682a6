"""Conversion of the float mosaic to the requested output data type.

Applied only at the write boundary; the compositor always works in float64.
"""
import enum
import math

import numpy as np

from ._typing_utils import FloatArray, NumArray


class OutputType(enum.Enum):
    """Output sample types, named as GDAL names them."""

    Byte = "Byte"
    UInt16 = "UInt16"
    Int16 = "Int16"
    UInt32 = "UInt32"
    Int32 = "Int32"
    Float32 = "Float32"

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(_DTYPES[self])

    @property
    def is_integer(self) -> bool:
        return np.issubdtype(self.dtype, np.integer)


_DTYPES = {
    OutputType.Byte: np.uint8,
    OutputType.UInt16: np.uint16,
    OutputType.Int16: np.int16,
    OutputType.UInt32: np.uint32,
    OutputType.Int32: np.int32,
    OutputType.Float32: np.float32,
}


def round_and_clamp(value: float, output_type: OutputType) -> float:
    """A single value as it will be stored, e.g. the output nodata value.

    Integer types round to nearest and clamp to the type's range; NaN, which
    they can't represent, becomes 0.
    """
    if not output_type.is_integer:
        return float(np.float32(value))
    if math.isnan(value):
        return 0
    info = np.iinfo(output_type.dtype)
    return int(min(max(round(value), info.min), info.max))


def encode_tile(tile: FloatArray, output_type: OutputType) -> NumArray:
    """Convert a rendered tile to the output type (round and clamp for integers)."""
    dtype = output_type.dtype
    if not output_type.is_integer:
        return tile.astype(dtype)
    info = np.iinfo(dtype)
    rounded = np.rint(np.nan_to_num(tile, nan=0.0))
    return np.clip(rounded, info.min, info.max).astype(dtype)
