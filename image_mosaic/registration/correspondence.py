"""Feature correspondences between two overlapping image strips.

The aligner only needs pairs of points; how they are found is up to the
``CorrespondenceFinder`` it is given. ``OrbCorrespondenceFinder`` is the
default, built on scikit-image's ORB detector and binary descriptor matching.
"""
import logging
from dataclasses import dataclass
from typing import Protocol

import numpy as np
from skimage.feature import ORB, match_descriptors

from .._typing_utils import FloatArray
from ..raster import RasterPatch

logger = logging.getLogger(__name__)


class CorrespondenceFinder(Protocol):
    def find(self, patch_a: RasterPatch, patch_b: RasterPatch) -> tuple[FloatArray, FloatArray]:
        """Matched points between two patches.

        Returns two ``(n, 2)`` arrays of ``(x, y)`` coordinates local to each
        patch; row ``k`` of one matches row ``k`` of the other. ``n`` may be 0.
        """
        ...


def normalize_for_detection(patch: RasterPatch) -> FloatArray:
    """Scale valid samples to [0, 1]; invalid samples become 0."""
    values = np.where(patch.valid, patch.values, 0.0)
    if not patch.valid.any():
        return np.zeros(values.shape, dtype=np.float64)
    lo = values[patch.valid].min()
    hi = values[patch.valid].max()
    if hi <= lo:
        return np.zeros(values.shape, dtype=np.float64)
    return np.where(patch.valid, (values - lo) / (hi - lo), 0.0)


@dataclass
class OrbCorrespondenceFinder:
    """ORB keypoints matched with cross-checked Hamming distance."""

    n_keypoints: int = 2000
    fast_threshold: float = 0.05
    max_ratio: float = 0.8

    def _detect(self, patch: RasterPatch) -> tuple[FloatArray, np.ndarray]:
        detector = ORB(n_keypoints=self.n_keypoints, fast_threshold=self.fast_threshold)
        try:
            detector.detect_and_extract(normalize_for_detection(patch))
        except RuntimeError as e:
            # ORB raises when the image has no usable features at all.
            logger.debug(f"No ORB features in patch {patch.box}: {e}")
            return np.empty((0, 2)), np.empty((0, 256), dtype=bool)

        # keypoints are (row, col); keep only those on valid pixels
        keypoints = detector.keypoints
        rows = np.clip(np.round(keypoints[:, 0]).astype(int), 0, patch.valid.shape[0] - 1)
        cols = np.clip(np.round(keypoints[:, 1]).astype(int), 0, patch.valid.shape[1] - 1)
        on_valid = patch.valid[rows, cols]
        points = keypoints[on_valid][:, ::-1]
        return points, detector.descriptors[on_valid]

    def find(self, patch_a: RasterPatch, patch_b: RasterPatch) -> tuple[FloatArray, FloatArray]:
        points_a, descriptors_a = self._detect(patch_a)
        points_b, descriptors_b = self._detect(patch_b)
        logger.debug(f"Detected {len(points_a)} and {len(points_b)} keypoints")
        if len(points_a) == 0 or len(points_b) == 0:
            return np.empty((0, 2)), np.empty((0, 2))

        matches = match_descriptors(
            descriptors_a, descriptors_b, cross_check=True, max_ratio=self.max_ratio
        )
        return points_a[matches[:, 0]], points_b[matches[:, 1]]
