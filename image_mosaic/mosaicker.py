import contextlib
import logging
import math
import pathlib
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import dask
import numpy as np
import tifffile
import zarr

from .benchmarking_util import debug_timing
from .compositor import TileCompositor, tile_grid
from .errors import ConfigurationError
from .geometry import Box
from .output_encoding import OutputType, encode_tile, round_and_clamp
from .parameters import MosaicParameters, OutputFormat
from .raster import GDAL_NODATA_TAG, RasterSource, open_raster
from .registration import ChainPlan, ChainPlanner, OrbCorrespondenceFinder, PairwiseAligner
from .registration.correspondence import CorrespondenceFinder

# Classic TIFF offsets are 32-bit; switch to BigTIFF well before that.
BIGTIFF_THRESHOLD_BYTES = 2**32 - 2**25


@dataclass
class ProgressCallbacks:
    update_progress: Callable[[int, int], None]
    starting_alignment: Callable[[], None]
    starting_saving: Callable[[], None]
    finished_saving: Callable[[str, object], None]

    @classmethod
    def no_op(cls):
        return cls(
            update_progress=lambda _a, _b: None,
            starting_alignment=lambda: None,
            starting_saving=lambda: None,
            finished_saving=lambda _s, _obj: None,
        )


class Mosaicker:
    """Runs the whole mosaic: open images, align the chain, render and write."""

    def __init__(
        self,
        params: MosaicParameters,
        callbacks: ProgressCallbacks = ProgressCallbacks.no_op(),
        finder: Optional[CorrespondenceFinder] = None,
    ):
        self.params = params
        self.callbacks = callbacks
        self.finder = finder or OrbCorrespondenceFinder()

    def load_images(self, stack: contextlib.ExitStack) -> list[RasterSource]:
        """Open the input images. They are closed when ``stack`` unwinds."""
        return [
            stack.enter_context(
                open_raster(
                    path,
                    band=self.params.band,
                    nodata=self.params.input_nodata_value,
                    policy=self.params.nodata_policy,
                )
            )
            for path in self.params.image_files
        ]

    def output_nodata_value(self, images: list[RasterSource]) -> float:
        """The configured output nodata, else the one of the (last) input image."""
        if self.params.output_nodata_value is not None:
            return self.params.output_nodata_value
        nodata = images[-1].nodata
        logging.info(f"Using output nodata value {nodata} from {images[-1].name}")
        return nodata

    def plan(self, images: list[RasterSource]) -> ChainPlan:
        aligner = PairwiseAligner(self.finder, self.params.ransac_config())
        planner = ChainPlanner(
            aligner,
            overlap_width=self.params.overlap_width,
            layout=self.params.orientation,
            progress=True,
        )
        with debug_timing("Computing image positions"):
            return planner.plan(images)

    def create_compositor(self, images: list[RasterSource], plan: ChainPlan) -> TileCompositor:
        blend_radius = self.params.effective_blend_radius
        logging.info(f"Using blend radius {blend_radius}, tile size {self.params.effective_tile_size}")
        return TileCompositor(
            images,
            plan,
            blend_radius=blend_radius,
            output_nodata_value=self.output_nodata_value(images),
            cutoff_mode=self.params.weight_cutoff,
            weighting=self.params.weighting,
        )

    def write(self, compositor: TileCompositor) -> pathlib.Path:
        output_path = pathlib.Path(self.params.output_image)
        output_path.parent.mkdir(exist_ok=True, parents=True)
        tile_size = self.params.effective_tile_size
        output_type = self.params.output_type
        logging.info(f"Writing {output_type.value} mosaic of size {compositor.canvas_size} to: {output_path}")

        width, height = compositor.canvas_size
        with debug_timing(f"Writing {output_path}", num_pixels=width * height):
            if self.params.output_format == OutputFormat.tiff:
                write_tiff(
                    output_path,
                    compositor,
                    tile_size,
                    output_type,
                    num_workers=self.params.num_workers,
                    update_progress=self.callbacks.update_progress,
                )
            elif self.params.output_format == OutputFormat.zarr:
                write_zarr(output_path, compositor, tile_size, output_type, num_workers=self.params.num_workers)
            else:
                raise ConfigurationError(f"Unexpected OutputFormat value: {self.params.output_format}")
        return output_path

    def run(self) -> pathlib.Path:
        """Build the mosaic and write it. Nothing is written if alignment fails."""
        with contextlib.ExitStack() as stack:
            images = self.load_images(stack)
            logging.info(f"Mosaicking {len(images)} images")

            self.callbacks.starting_alignment()
            plan = self.plan(images)
            compositor = self.create_compositor(images, plan)

            self.callbacks.starting_saving()
            output_path = self.write(compositor)
        self.callbacks.finished_saving(str(output_path), self.params.output_type.dtype)
        logging.info(f"Successfully saved to: {output_path}")
        return output_path


def _render_tile_rows(
    compositor: TileCompositor,
    tile_size: int,
    output_type: OutputType,
    num_workers: Optional[int],
) -> Iterator[tuple[Box, np.ndarray]]:
    """Encoded tiles in row-major order, rendered one row of tiles at a time."""
    mosaic = compositor.to_dask(tile_size).map_blocks(
        encode_tile, output_type, dtype=output_type.dtype
    )
    width, height = compositor.canvas_size
    for row_start in range(0, height, tile_size):
        row_stop = min(row_start + tile_size, height)
        tile_row = mosaic[row_start:row_stop].compute(scheduler="threads", num_workers=num_workers)
        for tile in tile_grid((width, row_stop - row_start), tile_size):
            yield tile.translate(0, row_start), tile_row[tile.slices()]


def write_tiff(
    path: pathlib.Path,
    compositor: TileCompositor,
    tile_size: int,
    output_type: OutputType,
    num_workers: Optional[int] = None,
    update_progress: Callable[[int, int], None] = lambda _a, _b: None,
) -> None:
    """Stream the mosaic into a tiled TIFF, never holding more than a row of tiles."""
    width, height = compositor.canvas_size
    dtype = output_type.dtype
    nodata = round_and_clamp(compositor.output_nodata_value, output_type)
    total_tiles = math.ceil(width / tile_size) * math.ceil(height / tile_size)

    def padded_tiles() -> Iterator[np.ndarray]:
        for done, (box, data) in enumerate(
            _render_tile_rows(compositor, tile_size, output_type, num_workers), start=1
        ):
            # TIFF tiles all have the full tile shape; pad the edges with nodata.
            tile = np.full((tile_size, tile_size), nodata, dtype=dtype)
            tile[: box.height, : box.width] = data
            update_progress(done, total_tiles)
            yield tile

    bigtiff = width * height * dtype.itemsize > BIGTIFF_THRESHOLD_BYTES
    tifffile.imwrite(
        path,
        padded_tiles(),
        shape=(height, width),
        dtype=dtype,
        tile=(tile_size, tile_size),
        bigtiff=bigtiff,
        photometric="minisblack",
        extratags=[(GDAL_NODATA_TAG, 2, 0, str(nodata), True)],
    )


def write_zarr(
    path: pathlib.Path,
    compositor: TileCompositor,
    tile_size: int,
    output_type: OutputType,
    num_workers: Optional[int] = None,
) -> None:
    """Write the mosaic as a zarr array chunked like the tiles."""
    mosaic = compositor.to_dask(tile_size).map_blocks(
        encode_tile, output_type, dtype=output_type.dtype
    )
    with dask.config.set(scheduler="threads", num_workers=num_workers):
        mosaic.to_zarr(str(path), overwrite=True)

    nodata = round_and_clamp(compositor.output_nodata_value, output_type)
    output = zarr.open_array(str(path), mode="r+")
    output.attrs["nodata"] = None if math.isnan(nodata) else nodata
