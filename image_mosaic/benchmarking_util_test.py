import unittest

from .benchmarking_util import debug_timing


class DebugTimingTest(unittest.TestCase):
    def test_logs_duration(self) -> None:
        with self.assertLogs(level="DEBUG") as cm:
            with debug_timing("Aligning"):
                pass
        self.assertEqual(len(cm.output), 1)
        self.assertRegex(cm.output[0], r"^DEBUG:root:Aligning: \d+\.\d{3}s$")

    def test_logs_pixel_rate(self) -> None:
        with self.assertLogs(level="DEBUG") as cm:
            with debug_timing("Writing mosaic.tif", num_pixels=2_500_000):
                pass
        self.assertRegex(cm.output[0], r"Writing mosaic\.tif: \d+\.\d{3}s, 2\.50 Mpx at (\d+\.\d{2}|inf) Mpx/s$")

    def test_nothing_logged_on_error(self) -> None:
        with self.assertNoLogs(level="DEBUG"), self.assertRaises(RuntimeError):
            with debug_timing("Failing"):
                raise RuntimeError("boom")
