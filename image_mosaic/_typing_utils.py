"""Array type aliases shared by the geometry, raster and blending code."""
from typing import Any

import numpy as np
import numpy.typing as npt

# Rasters and patches are always float64 once read; masks are bool.
NumArray = npt.NDArray[Any]
FloatArray = npt.NDArray[np.float64]
BoolArray = npt.NDArray[np.bool_]
