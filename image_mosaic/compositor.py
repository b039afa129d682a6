"""Lazy, tile-by-tile rendering of the blended mosaic.

``TileCompositor.render_tile`` is a pure function of the requested box and the
fixed inputs (images, placements, settings). Tiles can be rendered in any
order or in parallel, and no tile ever needs the whole mosaic in memory.
"""
import enum
import logging
import math
from typing import Iterator, NamedTuple, Optional, Sequence

import dask.array as da
import numpy as np
from scipy.ndimage import map_coordinates

from ._typing_utils import BoolArray, FloatArray
from .errors import ConfigurationError
from .geometry import AffineTransform, Box
from .raster import RasterSource
from .registration.chain_planning import BILINEAR_SUPPORT, ChainPlan
from .weights import centerline_weights, footprint_weights

logger = logging.getLogger(__name__)

# A resampled pixel is valid only if all the source pixels it blends are; this
# allows for float noise in the interpolated validity.
VALIDITY_TOLERANCE = 1e-6


class Weighting(enum.Enum):
    """Where the centerline spans of each contribution are measured."""

    footprint = "footprint"
    """On the image's placed extent. Every tile sees the same weights, so the
    mosaic does not depend on the tiling."""

    valid_mask = "valid_mask"
    """On the valid pixels around each tile's overlap, grown by the blend
    radius. Follows nodata borders inside an image, but tiles only agree where
    the overlapping images agree."""


class WeightCutoff(enum.Enum):
    """Upper bound applied to the centerline weights of each contribution."""

    margin_ratio = "margin_ratio"
    """``blend_radius / (min_side / 2 + blend_radius)`` of the image's footprint
    (of its overlap with the tile for ``Weighting.valid_mask``)."""

    none = "none"
    """Weights are used as computed."""


def weight_cutoff(
    region: Box, blend_radius: int, mode: WeightCutoff = WeightCutoff.margin_ratio
) -> float:
    """Largest weight an image may contribute, given the ``region`` it covers.

    Keeps a narrow region from being dominated by whichever image's centerline
    weight saturates first. This is a tunable, not a correctness requirement;
    without a blend radius there is nothing to tune and no cutoff applies.
    """
    if mode == WeightCutoff.none or blend_radius <= 0:
        return math.inf
    half_min_side = min(region.width, region.height) / 2.0
    return blend_radius / (half_min_side + blend_radius)


def tile_grid(canvas_size: tuple[int, int], tile_size: int) -> Iterator[Box]:
    """Row-major tiles of ``tile_size`` covering a ``(width, height)`` canvas."""
    width, height = canvas_size
    for y in range(0, height, tile_size):
        for x in range(0, width, tile_size):
            yield Box((x, y), (min(x + tile_size, width), min(y + tile_size, height)))


class _Contribution(NamedTuple):
    """One image's share of a tile, over ``box`` (reference frame)."""

    box: Box
    values: FloatArray
    valid: BoolArray
    weights: FloatArray


class TileCompositor:
    """Blends the placed images into output tiles on request.

    Args:
        images: Input rasters, in chain order.
        plan: Their placements and the canvas, from ``ChainPlanner``.
        blend_radius: Sets the weight cutoff. With ``Weighting.valid_mask`` it is
            also the margin around each intersection the weights are measured on.
        output_nodata_value: Value of pixels no image contributes to.
        cutoff_mode: How contribution weights are capped (see ``weight_cutoff``).
        weighting: Where the centerline weights are measured (see ``Weighting``).

    Raises:
        ConfigurationError: A placement transform is not invertible, or the
            images don't match the plan.
    """

    def __init__(
        self,
        images: Sequence[RasterSource],
        plan: ChainPlan,
        blend_radius: int,
        output_nodata_value: float,
        cutoff_mode: WeightCutoff = WeightCutoff.margin_ratio,
        weighting: Weighting = Weighting.footprint,
    ):
        if len(images) != len(plan.placements):
            raise ConfigurationError(
                f"{len(images)} images given for a plan with {len(plan.placements)} placements"
            )
        if blend_radius < 0:
            raise ConfigurationError(f"Blend radius must not be negative, got {blend_radius}")
        self.images = tuple(images)
        self.plan = plan
        self.blend_radius = int(blend_radius)
        self.output_nodata_value = float(output_nodata_value)
        self.cutoff_mode = cutoff_mode
        self.weighting = weighting
        self._inverse_transforms: tuple[AffineTransform, ...] = tuple(
            self._inverse(i) for i in range(len(self.images))
        )

    def _inverse(self, i: int) -> AffineTransform:
        try:
            return self.plan.placements[i].to_native
        except ConfigurationError as e:
            raise ConfigurationError(f"Placement of image {i} ({self.images[i].name}): {e}") from e

    @property
    def canvas_size(self) -> tuple[int, int]:
        return self.plan.canvas_size

    @property
    def shape(self) -> tuple[int, int]:
        """``(rows, cols)`` of the whole mosaic."""
        return self.plan.canvas.shape

    def render_tile(self, tile: Box) -> FloatArray:
        """Blended output pixels for ``tile`` (canvas pixel coordinates)."""
        values, _ = self.render_tile_with_weights(tile)
        return values

    def render_tile_with_weights(self, tile: Box) -> tuple[FloatArray, FloatArray]:
        """Blended output pixels for ``tile`` along with their total weight."""
        accumulator = np.zeros(tile.shape, dtype=np.float64)
        weights = np.zeros(tile.shape, dtype=np.float64)

        # Canvas pixel (0, 0) is the reference frame point canvas.min.
        frame_tile = tile.translate(*self.plan.canvas.min)
        for i, placement in enumerate(self.plan.placements):
            if not placement.box.intersects(frame_tile):
                continue
            contribution = self._contribution(i, placement.box.intersection(frame_tile))
            if contribution is None:
                continue
            rows, cols = contribution.box.relative_to(frame_tile).slices()
            used = contribution.valid
            accumulator[rows, cols] += np.where(used, contribution.values * contribution.weights, 0.0)
            weights[rows, cols] += np.where(used, contribution.weights, 0.0)

        output = np.full(tile.shape, self.output_nodata_value, dtype=np.float64)
        covered = weights > 0
        output[covered] = accumulator[covered] / weights[covered]
        return output, weights

    def _contribution(self, i: int, intersection: Box) -> Optional[_Contribution]:
        """Resampled, weighted pixels of image ``i`` over ``intersection``.

        None when the image has nothing usable there.
        """
        image = self.images[i]
        if self.weighting == Weighting.footprint:
            working = intersection
        else:
            working = intersection.expand(self.blend_radius)
        resampled = self._resample(i, working)
        if resampled is None:
            return None
        values, valid = resampled

        if self.weighting == Weighting.footprint:
            weights = footprint_weights(self._inverse_transforms[i], image.shape, working)
            # Capped by the whole footprint, not the part inside this tile.
            cutoff = weight_cutoff(self.plan.placements[i].box, self.blend_radius, self.cutoff_mode)
        else:
            weights = centerline_weights(valid)
            cutoff = weight_cutoff(intersection, self.blend_radius, self.cutoff_mode)
        np.clip(weights, 0.0, cutoff, out=weights)

        rows, cols = intersection.relative_to(working).slices()
        valid = valid[rows, cols]
        if not valid.any():
            logger.debug(f"Image {i} ({image.name}) has no valid pixels in {intersection}")
            return None
        return _Contribution(intersection, values[rows, cols], valid, weights[rows, cols])

    def _resample(self, i: int, box: Box) -> Optional[tuple[FloatArray, BoolArray]]:
        """Bilinear resampling of image ``i`` onto the reference frame ``box``.

        Pixels mapping outside the image (or onto invalid samples) come back
        invalid.
        """
        image = self.images[i]
        inverse = self._inverse_transforms[i]
        request = inverse.forward_box(box).expand(BILINEAR_SUPPORT)
        request = request.intersection(Box.from_shape(image.shape))
        if request.is_empty():
            return None

        try:
            patch = image.read(request)
        except (OSError, ValueError) as e:
            logger.warning(f"Skipping image {i} ({image.name}) region {request}: {e}")
            return None
        if not patch.valid.any():
            return None

        xs, ys = np.meshgrid(
            np.arange(box.min[0], box.max[0], dtype=np.float64),
            np.arange(box.min[1], box.max[1], dtype=np.float64),
        )
        native = inverse.forward(np.stack([xs.ravel(), ys.ravel()], axis=1))
        coords = np.stack(
            [native[:, 1] - patch.box.min[1], native[:, 0] - patch.box.min[0]]
        )

        filled = np.where(patch.valid, patch.values, 0.0)
        values = map_coordinates(filled, coords, order=1, mode="grid-constant", cval=0.0, prefilter=False)
        validity = map_coordinates(
            patch.valid.astype(np.float64), coords, order=1, mode="grid-constant", cval=0.0, prefilter=False
        )
        valid = validity >= 1.0 - VALIDITY_TOLERANCE
        return values.reshape(box.shape), valid.reshape(box.shape)

    def to_dask(self, tile_size: int) -> da.Array:
        """The whole mosaic as a lazy dask array, one ``render_tile`` per block."""
        template = da.empty(self.shape, chunks=(tile_size, tile_size), dtype=np.float64)
        return da.map_blocks(
            self._render_block,
            template,
            dtype=np.float64,
            meta=np.empty((0, 0), dtype=np.float64),
        )

    def _render_block(self, block: FloatArray, block_info: Optional[dict] = None) -> FloatArray:
        (row_start, row_stop), (col_start, col_stop) = block_info[0]["array-location"]
        return self.render_tile(Box((col_start, row_start), (col_stop, row_stop)))
