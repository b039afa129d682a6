"""Robust affine registration of two adjacent images.

Correspondences found in the expected overlap strips are moved back into full
image coordinates and fed to RANSAC, which fits an affine transform from image
B's frame to image A's frame while ignoring mismatched pairs.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from skimage.measure import ransac
from skimage.transform import AffineTransform as SkimageAffineTransform

from .._typing_utils import BoolArray, FloatArray
from ..errors import AlignmentError
from ..geometry import AffineTransform, Box
from ..raster import RasterSource
from .correspondence import CorrespondenceFinder

logger = logging.getLogger(__name__)

# Points needed to determine an affine transform.
AFFINE_MIN_SAMPLES = 3

# Factor the minimum inlier count is divided by on each relaxation step.
RELAXATION_FACTOR = 1.5


@dataclass
class RANSACConfig:
    """Configuration for the RANSAC affine fit."""
    max_trials: int = 100
    residual_threshold: float = 10.0
    min_inlier_fraction: float = 0.5
    relax_min_inliers: bool = True
    random_seed: Optional[int] = 0

    def min_inliers(self, num_correspondences: int) -> int:
        return int(num_correspondences * self.min_inlier_fraction)


@dataclass
class AlignmentResult:
    """Transform taking points in image B's frame to image A's frame."""
    transform: AffineTransform
    inliers: BoolArray = field(repr=False)
    num_correspondences: int = 0

    @property
    def num_inliers(self) -> int:
        return int(np.count_nonzero(self.inliers))


class PairwiseAligner:
    def __init__(self, finder: CorrespondenceFinder, config: Optional[RANSACConfig] = None):
        self.finder = finder
        self.config = config or RANSACConfig()

    def align(
        self,
        image_a: RasterSource,
        roi_a: Box,
        image_b: RasterSource,
        roi_b: Box,
    ) -> AlignmentResult:
        """Register ``roi_b`` of image B onto ``roi_a`` of image A."""
        patch_a = image_a.read(roi_a)
        patch_b = image_b.read(roi_b)
        local_a, local_b = self.finder.find(patch_a, patch_b)

        # Correspondences are local to the patches; shift them to image coordinates.
        points_a = np.asarray(local_a, dtype=np.float64).reshape(-1, 2) + np.asarray(patch_a.box.min)
        points_b = np.asarray(local_b, dtype=np.float64).reshape(-1, 2) + np.asarray(patch_b.box.min)
        logger.info(
            f"Found {len(points_a)} correspondences between {image_a.name} {patch_a.box} "
            f"and {image_b.name} {patch_b.box}"
        )
        return self.fit(points_a, points_b)

    def fit(self, points_a: FloatArray, points_b: FloatArray) -> AlignmentResult:
        """Fit the affine transform mapping ``points_b`` onto ``points_a``.

        Raises:
            AlignmentError: Too few correspondences, or no model reaches the
                minimum inlier count (even after relaxing it, if enabled).
        """
        points_a = np.asarray(points_a, dtype=np.float64)
        points_b = np.asarray(points_b, dtype=np.float64)
        if points_a.shape != points_b.shape:
            raise ValueError(
                f"Correspondence arrays differ in shape: {points_a.shape} vs {points_b.shape}"
            )
        num = len(points_a)
        if num < AFFINE_MIN_SAMPLES:
            raise AlignmentError(
                f"{num} correspondences found, at least {AFFINE_MIN_SAMPLES} are needed"
            )

        config = self.config
        rng = np.random.default_rng(config.random_seed)
        required = max(AFFINE_MIN_SAMPLES, config.min_inliers(num))
        logger.debug(f"RANSAC on {num} correspondences, requiring {required} inliers")

        while True:
            model, inliers = ransac(
                (points_b, points_a),
                SkimageAffineTransform,
                min_samples=AFFINE_MIN_SAMPLES,
                residual_threshold=config.residual_threshold,
                max_trials=config.max_trials,
                rng=rng,
            )
            num_inliers = 0 if inliers is None else int(np.count_nonzero(inliers))
            if model is not None and num_inliers >= required:
                break
            if not config.relax_min_inliers or required <= AFFINE_MIN_SAMPLES:
                raise AlignmentError(
                    f"RANSAC found {num_inliers} inliers among {num} correspondences, "
                    f"{required} required"
                )
            required = max(AFFINE_MIN_SAMPLES, int(required / RELAXATION_FACTOR))
            logger.info(f"No fit with enough inliers, relaxing minimum to {required}")

        transform = AffineTransform.from_matrix(model.params)
        if not transform.is_invertible():
            raise AlignmentError(f"RANSAC produced a degenerate transform {transform}")
        logger.info(f"Fit {transform} with {num_inliers}/{num} inliers")
        return AlignmentResult(transform, np.asarray(inliers, dtype=bool), num)
