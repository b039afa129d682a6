"""Global layout of a chain of images.

Each image is registered to its predecessor only; the pairwise transforms are
chained so that every image gets an absolute transform into the first image's
frame. The footprints of the transformed images then give the canvas.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from tqdm import tqdm

from ..errors import AlignmentError, ConfigurationError
from ..geometry import AffineTransform, Box
from ..raster import RasterSource
from .pairwise_alignment import AlignmentResult, PairwiseAligner

logger = logging.getLogger(__name__)

# Bilinear resampling reads one pixel beyond the mapped footprint.
BILINEAR_SUPPORT = 1


class Layout(enum.Enum):
    """How consecutive images overlap."""

    horizontal = "horizontal"
    """Each image continues to the right of the previous one."""


@dataclass(frozen=True)
class Placement:
    """Where one image lands in the mosaic.

    ``transform`` maps the image's own pixel coordinates into the reference
    frame (the first image's frame); ``box`` is its footprint there.
    """

    transform: AffineTransform
    box: Box

    @property
    def to_native(self) -> AffineTransform:
        """Reference frame to the image's own pixels, as used for resampling.

        Raises ConfigurationError if the placement transform is singular.
        """
        return self.transform.inverse()


@dataclass(frozen=True)
class ChainPlan:
    placements: tuple[Placement, ...]
    canvas: Box
    alignments: tuple[AlignmentResult, ...] = ()

    @property
    def canvas_size(self) -> tuple[int, int]:
        """``(width, height)`` of the output mosaic."""
        return self.canvas.size

    def __len__(self) -> int:
        return len(self.placements)


def overlap_strips(
    shape_a: tuple[int, int], shape_b: tuple[int, int], overlap_width: int, layout: Layout
) -> tuple[Box, Box]:
    """The regions of A and B where their overlap is searched for."""
    extent_a = Box.from_shape(shape_a)
    extent_b = Box.from_shape(shape_b)
    if layout == Layout.horizontal:
        # A's trailing columns against B's leading columns, full height.
        roi_a = Box((extent_a.max[0] - overlap_width, 0), extent_a.max)
        roi_b = Box((0, 0), (overlap_width, extent_b.max[1]))
    else:
        raise ConfigurationError(f"Unsupported layout: {layout}")

    roi_a = roi_a.intersection(extent_a)
    roi_b = roi_b.intersection(extent_b)
    if roi_a.is_empty() or roi_b.is_empty():
        raise ConfigurationError(
            f"Empty overlap strip for overlap width {overlap_width} "
            f"(image shapes {shape_a} and {shape_b})"
        )
    return roi_a, roi_b


class ChainPlanner:
    def __init__(
        self,
        aligner: PairwiseAligner,
        overlap_width: int,
        layout: Union[Layout, str] = Layout.horizontal,
        progress: bool = False,
    ):
        try:
            self.layout = Layout(layout)
        except ValueError:
            raise ConfigurationError(
                f"Unsupported layout {layout!r}; supported: {[m.value for m in Layout]}"
            ) from None
        if overlap_width <= 0:
            raise ConfigurationError(f"Overlap width must be positive, got {overlap_width}")
        self.aligner = aligner
        self.overlap_width = overlap_width
        self.progress = progress

    def relative_transform(
        self, image_a: RasterSource, image_b: RasterSource
    ) -> AlignmentResult:
        """Transform from B's frame to A's frame, A being B's predecessor."""
        roi_a, roi_b = overlap_strips(image_a.shape, image_b.shape, self.overlap_width, self.layout)
        logger.debug(f"Overlap strips: {image_a.name} {roi_a}, {image_b.name} {roi_b}")
        return self.aligner.align(image_a, roi_a, image_b, roi_b)

    def plan(self, images: Sequence[RasterSource]) -> ChainPlan:
        """Align every adjacent pair and lay the whole chain out.

        Raises:
            ConfigurationError: No images were given.
            AlignmentError: Some adjacent pair could not be aligned. The
                planner stops there; there is no partial plan.
        """
        if len(images) == 0:
            raise ConfigurationError("No images to mosaic")

        transforms = [AffineTransform.identity()]
        alignments = []
        pairs = range(1, len(images))
        if self.progress:
            pairs = tqdm(pairs, desc="Aligning image pairs")
        for i in pairs:
            try:
                result = self.relative_transform(images[i - 1], images[i])
            except AlignmentError as e:
                raise AlignmentError(
                    f"{images[i - 1].name} -> {images[i].name}: {e}", pair=(i - 1, i)
                ) from e
            alignments.append(result)
            # The relative transform acts first, in image i's own frame.
            absolute = transforms[i - 1].compose(result.transform)
            transforms.append(absolute)
            logger.info(f"Image {i} ({images[i].name}) relative transform: {result.transform}")
            logger.info(f"Image {i} ({images[i].name}) absolute transform: {absolute}")

        plan = self.place(transforms, [image.shape for image in images], alignments)
        logger.info(f"Mosaic canvas {plan.canvas}, size {plan.canvas_size}")
        return plan

    @staticmethod
    def place(
        transforms: Sequence[AffineTransform],
        shapes: Sequence[tuple[int, int]],
        alignments: Optional[Sequence[AlignmentResult]] = None,
    ) -> ChainPlan:
        """Footprints and canvas from absolute transforms and image shapes.

        A pure function of its inputs: the same transforms always give the same
        boxes. The first image's footprint is exactly its extent; the others
        are their mapped corners grown by the bilinear support, cropped to the
        canvas.
        """
        if len(transforms) != len(shapes):
            raise ValueError(f"Got {len(transforms)} transforms for {len(shapes)} images")
        if len(transforms) == 0:
            raise ConfigurationError("No images to mosaic")

        first_box = transforms[0].forward_box(Box.from_shape(shapes[0]))
        canvas = first_box
        boxes = [first_box]
        for transform, shape in zip(transforms[1:], shapes[1:]):
            footprint = transform.forward_box(Box.from_shape(shape))
            canvas = canvas.union(footprint)
            boxes.append(footprint.expand(BILINEAR_SUPPORT))

        placements = tuple(
            Placement(transform, box.intersection(canvas))
            for transform, box in zip(transforms, boxes)
        )
        return ChainPlan(placements, canvas, tuple(alignments or ()))
