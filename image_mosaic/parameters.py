import enum
import os
import pathlib
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field

from .compositor import WeightCutoff, Weighting
from .output_encoding import OutputType
from .raster import NodataPolicy
from .registration.chain_planning import Layout
from .registration.pairwise_alignment import RANSACConfig

# Block sizes of tiled TIFFs must be multiples of this.
TIFF_TILE_MULTIPLE = 16


class OutputFormat(enum.Enum):
    tiff = ".tif"
    zarr = ".zarr"

    @classmethod
    def from_path(cls, path: str) -> "OutputFormat":
        suffix = pathlib.Path(path).suffix.lower()
        if suffix in (".tif", ".tiff"):
            return cls.tiff
        elif suffix == ".zarr":
            return cls.zarr
        raise ValueError(
            f"Unsupported output image extension {suffix!r} in {path}; use .tif, .tiff or .zarr"
        )


def input_path_exists(path: str) -> str:
    """Pydantic validator to check the path exists."""
    if not os.path.exists(path):
        raise ValueError(f"Input image does not exist: {path}")

    return path


def output_path_supported(path: str) -> str:
    """Pydantic validator for the output image name."""
    if not path:
        raise ValueError("Missing output image name")
    OutputFormat.from_path(path)
    return path


def round_up_to_multiple(size: int, multiple: int) -> int:
    return -(-size // multiple) * multiple


class MosaicParameters(
    BaseModel,
    use_attribute_docstrings=True,
):
    """Parameters for mosaicking a line of overlapping images."""

    image_files: Annotated[list[Annotated[str, AfterValidator(input_path_exists)]], Field(min_length=1)]
    """The images to mosaic, in order along the line."""

    output_image: Annotated[str, AfterValidator(output_path_supported)]
    """Where to write the mosaic. The extension (.tif/.tiff or .zarr) selects the format."""

    orientation: Layout = Layout.horizontal
    """How the images are laid out. Only "horizontal" is supported."""

    overlap_width: int = Field(default=2000, gt=0)
    """Width in pixels of the strips searched for overlap between neighbors."""

    blend_radius: int = Field(default=0, ge=0)
    """Size to perform blending over. 0 means the overlap width."""

    band: Optional[int] = Field(default=None, ge=1)
    """Which band to use for multi-band images (1-based). Defaults to the first."""

    input_nodata_value: Optional[float] = None
    """Overrides the nodata value stored in the input images."""

    nodata_policy: NodataPolicy = NodataPolicy.less_or_equal
    """Which input samples count as nodata: those less than or equal to the
    nodata value (default), or only those equal to it."""

    output_nodata_value: Optional[float] = None
    """Nodata value for the output. Defaults to the nodata value of the input images."""

    output_type: OutputType = OutputType.Float32
    """Output data type. Integer types are rounded and then clamped to the type's limits."""

    tile_size: int = Field(default=256, gt=0)
    """Requested output tile size in pixels (see ``effective_tile_size``)."""

    ransac_iterations: int = Field(default=100, gt=0)
    """Number of RANSAC trials per image pair."""

    inlier_threshold: float = Field(default=10.0, gt=0)
    """Reprojection error in pixels under which a correspondence is an inlier."""

    random_seed: Optional[int] = 0
    """Seed for RANSAC sampling; fixed by default so reruns give the same mosaic."""

    weight_cutoff: WeightCutoff = WeightCutoff.margin_ratio
    """How the blending weights of each image are capped."""

    weighting: Weighting = Weighting.footprint
    """Where blending weights are measured. ``footprint`` keeps the mosaic
    independent of ``tile_size``; ``valid_mask`` follows nodata borders."""

    num_workers: Optional[int] = Field(default=None, gt=0)
    """Threads used to render tiles. Defaults to dask's choice."""

    verbose: bool = False
    """Show debug-level logging."""

    @property
    def effective_blend_radius(self) -> int:
        return self.blend_radius or self.overlap_width

    @property
    def effective_tile_size(self) -> int:
        """Tile size actually used for rendering and writing.

        At least twice the blend radius, and a multiple of 16 as TIFF requires.
        """
        size = max(self.tile_size, 2 * self.effective_blend_radius)
        return round_up_to_multiple(size, TIFF_TILE_MULTIPLE)

    @property
    def output_format(self) -> OutputFormat:
        return OutputFormat.from_path(self.output_image)

    def ransac_config(self) -> RANSACConfig:
        return RANSACConfig(
            max_trials=self.ransac_iterations,
            residual_threshold=self.inlier_threshold,
            random_seed=self.random_seed,
        )

    @classmethod
    def from_json_file(cls, json_path: str) -> "MosaicParameters":
        """Create parameters from a JSON file.

        Args:
            json_path: Path to JSON file containing parameters

        Returns:
            MosaicParameters: New instance with values from JSON
        """
        with open(json_path) as f:
            return cls.model_validate_json(f.read())

    def to_json_file(self, json_path: str) -> None:
        """Save parameters to a JSON file.

        Args:
            json_path: Path where JSON file should be saved
        """
        with open(json_path, "w") as f:
            f.write(self.model_dump_json(indent=2))
