import tempfile
import unittest

import pydantic

from image_mosaic.testutil import PARAMETERS_FIXTURE_FILE

from .compositor import WeightCutoff, Weighting
from .output_encoding import OutputType
from .parameters import MosaicParameters, OutputFormat
from .raster import NodataPolicy
from .registration.chain_planning import Layout


class ParametersTest(unittest.TestCase):
    def test_parsing(self) -> None:
        params = MosaicParameters.from_json_file(str(PARAMETERS_FIXTURE_FILE))
        self.assertEqual(params.image_files, ["/", "/"])
        self.assertEqual(params.orientation, Layout.horizontal)
        self.assertEqual(params.output_format, OutputFormat.tiff)
        self.assertEqual(params.output_type, OutputType.Float32)
        self.assertEqual(params.nodata_policy, NodataPolicy.less_or_equal)
        self.assertEqual(params.weight_cutoff, WeightCutoff.margin_ratio)
        self.assertEqual(params.weighting, Weighting.footprint)

    def test_roundtrip(self) -> None:
        with tempfile.NamedTemporaryFile("w+", delete=True) as f:
            params = MosaicParameters.from_json_file(str(PARAMETERS_FIXTURE_FILE))
            params.to_json_file(f.name)
            f.flush()
            f.seek(0)
            contents = f.read()

        with open(PARAMETERS_FIXTURE_FILE) as f:
            fixture_contents = f.read()

        self.assertEqual(contents, fixture_contents)

    def test_effective_blend_radius_and_tile_size(self) -> None:
        params = MosaicParameters(image_files=["/"], output_image="out.tif", overlap_width=100)
        self.assertEqual(params.effective_blend_radius, 100)
        self.assertEqual(params.effective_tile_size, 256)

        params = MosaicParameters(
            image_files=["/"], output_image="out.tif", overlap_width=2000, blend_radius=150, tile_size=100
        )
        self.assertEqual(params.effective_blend_radius, 150)
        self.assertEqual(params.effective_tile_size, 304)

        params = MosaicParameters(image_files=["/"], output_image="out.zarr", tile_size=250)
        self.assertEqual(params.effective_tile_size, 4000)

    def test_ransac_config(self) -> None:
        params = MosaicParameters(
            image_files=["/"], output_image="out.tif", ransac_iterations=7, inlier_threshold=2.5, random_seed=3
        )
        config = params.ransac_config()
        self.assertEqual(config.max_trials, 7)
        self.assertEqual(config.residual_threshold, 2.5)
        self.assertEqual(config.random_seed, 3)

    def test_output_format_from_extension(self) -> None:
        self.assertEqual(OutputFormat.from_path("a/b/mosaic.TIFF"), OutputFormat.tiff)
        self.assertEqual(OutputFormat.from_path("mosaic.zarr"), OutputFormat.zarr)
        with self.assertRaises(ValueError):
            OutputFormat.from_path("mosaic.png")

    def test_rejects_bad_inputs(self) -> None:
        with self.assertRaises(pydantic.ValidationError):
            MosaicParameters(image_files=[], output_image="out.tif")
        with self.assertRaises(pydantic.ValidationError):
            MosaicParameters(image_files=["/"], output_image="out.png")
        with self.assertRaises(pydantic.ValidationError):
            MosaicParameters(image_files=["/"], output_image="")
        with self.assertRaises(pydantic.ValidationError):
            MosaicParameters(image_files=["/does/not/exist.tif"], output_image="out.tif")
        with self.assertRaises(pydantic.ValidationError):
            MosaicParameters(image_files=["/"], output_image="out.tif", orientation="vertical")
