import pathlib
import tempfile
import unittest

import numpy as np
import tifffile
import zarr

from .errors import AlignmentError
from .output_encoding import OutputType
from .parameters import MosaicParameters
from .mosaicker import Mosaicker, ProgressCallbacks
from .raster import read_tiff_nodata
from .testutil import (
    GridCorrespondenceFinder,
    NoCorrespondenceFinder,
    gradient_field,
    temporary_tiff_images,
)


class MosaickerTest(unittest.TestCase):
    def setUp(self) -> None:
        # Two strips cut from one field, the second starting 80 columns in.
        self.field = gradient_field(100, 180)
        self.strips = [self.field[:, :100], self.field[:, 80:]]

    def make_params(self, image_files: list[str], output_image: str, **kwargs) -> MosaicParameters:
        return MosaicParameters(
            image_files=image_files,
            output_image=output_image,
            overlap_width=80,
            blend_radius=20,
            tile_size=32,
            **kwargs,
        )

    def test_tiff_mosaic(self) -> None:
        with temporary_tiff_images(self.strips, nodata=-1.0) as paths, tempfile.TemporaryDirectory() as out:
            output_image = str(pathlib.Path(out) / "nested" / "mosaic.tif")
            saved = None

            def finished_saving(output_path: str, _dtype: object) -> None:
                nonlocal saved
                saved = output_path

            callbacks = ProgressCallbacks.no_op()
            callbacks.finished_saving = finished_saving
            mosaicker = Mosaicker(
                self.make_params(paths, output_image), callbacks, finder=GridCorrespondenceFinder(dx=80)
            )
            mosaicker.run()
            self.assertEqual(saved, output_image)

            with tifffile.TiffFile(output_image) as tif:
                page = tif.pages[0]
                self.assertTrue(page.is_tiled)
                self.assertEqual(page.tilewidth, 48)
                mosaic = page.asarray()
            self.assertEqual(mosaic.shape, (100, 180))
            self.assertEqual(mosaic.dtype, np.float32)
            np.testing.assert_allclose(mosaic, self.field, rtol=1e-6)
            self.assertEqual(read_tiff_nodata(output_image), -1.0)

    def test_integer_tiff_mosaic(self) -> None:
        with temporary_tiff_images(self.strips, nodata=-1.0) as paths, tempfile.TemporaryDirectory() as out:
            output_image = str(pathlib.Path(out) / "mosaic.tiff")
            params = self.make_params(paths, output_image, output_type=OutputType.UInt16, output_nodata_value=7)
            Mosaicker(params, finder=GridCorrespondenceFinder(dx=80)).run()

            mosaic = tifffile.imread(output_image)
            self.assertEqual(mosaic.dtype, np.uint16)
            np.testing.assert_array_equal(mosaic, self.field.astype(np.uint16))
            self.assertEqual(read_tiff_nodata(output_image), 7.0)

    def test_zarr_mosaic(self) -> None:
        with temporary_tiff_images(self.strips, nodata=-1.0) as paths, tempfile.TemporaryDirectory() as out:
            output_image = str(pathlib.Path(out) / "mosaic.zarr")
            params = self.make_params(paths, output_image, num_workers=2)
            Mosaicker(params, finder=GridCorrespondenceFinder(dx=80)).run()

            mosaic = zarr.open_array(output_image, mode="r")
            self.assertEqual(mosaic.shape, (100, 180))
            self.assertEqual(mosaic.chunks, (48, 48))
            np.testing.assert_allclose(mosaic[:], self.field, rtol=1e-6)
            self.assertEqual(mosaic.attrs["nodata"], -1.0)

    def test_failed_alignment_writes_nothing(self) -> None:
        with temporary_tiff_images(self.strips, nodata=-1.0) as paths, tempfile.TemporaryDirectory() as out:
            output_image = pathlib.Path(out) / "mosaic.tif"
            mosaicker = Mosaicker(self.make_params(paths, str(output_image)), finder=NoCorrespondenceFinder())
            with self.assertRaises(AlignmentError) as cm:
                mosaicker.run()
            self.assertEqual(cm.exception.pair, (0, 1))
            self.assertFalse(output_image.exists())

    def test_single_image_is_copied(self) -> None:
        with temporary_tiff_images(self.strips[:1], nodata=-1.0) as paths, tempfile.TemporaryDirectory() as out:
            output_image = str(pathlib.Path(out) / "mosaic.tif")
            Mosaicker(self.make_params(paths, output_image), finder=NoCorrespondenceFinder()).run()
            np.testing.assert_allclose(tifffile.imread(output_image), self.strips[0], rtol=1e-6)

    def test_inputs_are_closed(self) -> None:
        opened = []

        class RecordingMosaicker(Mosaicker):
            def load_images(self, stack):
                images = super().load_images(stack)
                opened.extend(images)
                return images

        with temporary_tiff_images(self.strips, nodata=-1.0) as paths, tempfile.TemporaryDirectory() as out:
            params = self.make_params(paths, str(pathlib.Path(out) / "mosaic.tif"))
            RecordingMosaicker(params, finder=GridCorrespondenceFinder(dx=80)).run()
            self.assertEqual(len(opened), 2)
            self.assertTrue(all(image.closed for image in opened))

            opened.clear()
            failing = RecordingMosaicker(params, finder=NoCorrespondenceFinder())
            with self.assertRaises(AlignmentError):
                failing.run()
            self.assertEqual(len(opened), 2)
            self.assertTrue(all(image.closed for image in opened))
