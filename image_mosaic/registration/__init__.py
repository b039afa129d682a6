"""Registration of a chain of overlapping images.

Adjacent images are aligned pairwise from feature correspondences found in
their overlap strips, then the pairwise transforms are chained into one frame.
"""

from .correspondence import CorrespondenceFinder, OrbCorrespondenceFinder
from .pairwise_alignment import AlignmentResult, PairwiseAligner, RANSACConfig
from .chain_planning import ChainPlan, ChainPlanner, Layout, Placement, overlap_strips

__all__ = [
    'CorrespondenceFinder',
    'OrbCorrespondenceFinder',
    'AlignmentResult',
    'PairwiseAligner',
    'RANSACConfig',
    'ChainPlan',
    'ChainPlanner',
    'Layout',
    'Placement',
    'overlap_strips',
]
