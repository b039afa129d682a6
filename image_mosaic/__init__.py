"""Image Mosaic Package.

Builds one seamless raster from a line of large, partially overlapping images.

Main functionality:
- Registration: adjacent images are aligned with a robust affine fit of
  feature correspondences found in their overlap strips
- Chain planning: pairwise transforms are chained into the first image's
  frame, which also gives the output canvas
- Compositing: the output is rendered lazily, tile by tile, blending overlaps
  with centerline weights so no seam remains
"""

from .errors import AlignmentError, ConfigurationError, MosaicError
from .geometry import AffineTransform, Box
from .weights import centerline_weights, footprint_weights
from .raster import ArrayRaster, NodataPolicy, RasterPatch, RasterSource, TiffRaster, open_raster
from .registration import (
    AlignmentResult,
    ChainPlan,
    ChainPlanner,
    CorrespondenceFinder,
    Layout,
    OrbCorrespondenceFinder,
    PairwiseAligner,
    Placement,
    RANSACConfig,
)
from .compositor import TileCompositor, WeightCutoff, Weighting, tile_grid, weight_cutoff
from .output_encoding import OutputType, encode_tile, round_and_clamp
from .parameters import MosaicParameters, OutputFormat
from .mosaicker import Mosaicker, ProgressCallbacks

__all__ = [
    'AlignmentError',
    'ConfigurationError',
    'MosaicError',
    'AffineTransform',
    'Box',
    'centerline_weights',
    'footprint_weights',
    'ArrayRaster',
    'NodataPolicy',
    'RasterPatch',
    'RasterSource',
    'TiffRaster',
    'open_raster',
    'AlignmentResult',
    'ChainPlan',
    'ChainPlanner',
    'CorrespondenceFinder',
    'Layout',
    'OrbCorrespondenceFinder',
    'PairwiseAligner',
    'Placement',
    'RANSACConfig',
    'TileCompositor',
    'WeightCutoff',
    'Weighting',
    'tile_grid',
    'weight_cutoff',
    'OutputType',
    'encode_tile',
    'round_and_clamp',
    'MosaicParameters',
    'OutputFormat',
    'Mosaicker',
    'ProgressCallbacks',
]
