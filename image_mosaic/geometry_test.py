import unittest

import numpy as np

from .errors import ConfigurationError
from .geometry import AffineTransform, Box


class BoxTest(unittest.TestCase):
    def test_from_shape_is_cols_by_rows(self) -> None:
        box = Box.from_shape((30, 50))
        self.assertEqual(box, Box((0, 0), (50, 30)))
        self.assertEqual(box.size, (50, 30))
        self.assertEqual(box.shape, (30, 50))

    def test_intersection_and_union(self) -> None:
        a = Box((0, 0), (10, 10))
        b = Box((5, 2), (20, 8))
        self.assertEqual(a.intersection(b), Box((5, 2), (10, 8)))
        self.assertEqual(a.union(b), Box((0, 0), (20, 10)))
        self.assertTrue(a.intersects(b))

    def test_disjoint_intersection_is_empty(self) -> None:
        a = Box((0, 0), (10, 10))
        b = Box((10, 0), (20, 10))
        self.assertTrue(a.intersection(b).is_empty())
        self.assertFalse(a.intersects(b))
        self.assertEqual(a.union(Box((3, 3), (3, 3))), a)

    def test_from_points_snaps_near_integers(self) -> None:
        box = Box.from_points([[0.0000001, -1e-9], [9.9999999, 5.5]])
        self.assertEqual(box, Box((0, 0), (10, 6)))

    def test_slices(self) -> None:
        arr = np.arange(100).reshape(10, 10)
        box = Box((2, 3), (5, 4))
        np.testing.assert_array_equal(arr[box.slices()], [[32, 33, 34]])

    def test_expand_translate_relative(self) -> None:
        box = Box((10, 20), (30, 40))
        self.assertEqual(box.expand(2), Box((8, 18), (32, 42)))
        self.assertEqual(box.translate(-10, 5), Box((0, 25), (20, 45)))
        self.assertEqual(box.relative_to(Box((5, 5), (100, 100))), Box((5, 15), (25, 35)))


class AffineTransformTest(unittest.TestCase):
    def test_compose_with_identity(self) -> None:
        t = AffineTransform(np.array([[1.1, 0.2], [-0.1, 0.9]]), np.array([3.0, -4.0]))
        self.assertTrue(t.compose(AffineTransform.identity()).allclose(t))
        self.assertTrue(AffineTransform.identity().compose(t).allclose(t))

    def test_compose_applies_other_first(self) -> None:
        scale = AffineTransform(np.diag([2.0, 2.0]), np.zeros(2))
        shift = AffineTransform.from_translation(10.0, 0.0)
        point = np.array([1.0, 1.0])
        np.testing.assert_allclose(scale.compose(shift).forward(point), [22.0, 2.0])
        np.testing.assert_allclose(shift.compose(scale).forward(point), [12.0, 2.0])

    def test_inverse_round_trips_points(self) -> None:
        t = AffineTransform(np.array([[0.98, 0.05], [-0.03, 1.02]]), np.array([150.0, 7.5]))
        points = np.array([[0.0, 0.0], [100.0, 50.0], [-3.0, 1000.0]])
        np.testing.assert_allclose(t.reverse(t.forward(points)), points, atol=1e-9)
        self.assertTrue(t.compose(t.inverse()).allclose(AffineTransform.identity()))

    def test_singular_inverse_is_configuration_error(self) -> None:
        t = AffineTransform(np.array([[1.0, 2.0], [2.0, 4.0]]), np.zeros(2))
        self.assertFalse(t.is_invertible())
        with self.assertRaises(ConfigurationError):
            t.inverse()

    def test_from_matrix(self) -> None:
        params = np.array([[1.0, 0.0, 5.0], [0.0, 1.0, -2.0], [0.0, 0.0, 1.0]])
        t = AffineTransform.from_matrix(params)
        np.testing.assert_allclose(t.translation, [5.0, -2.0])
        np.testing.assert_allclose(t.as_matrix(), params)
        with self.assertRaises(ValueError):
            AffineTransform.from_matrix(np.eye(2))

    def test_arrays_are_read_only(self) -> None:
        t = AffineTransform.from_translation(1.0, 2.0)
        with self.assertRaises(ValueError):
            t.translation[0] = 5.0

    def test_forward_box_of_translation(self) -> None:
        t = AffineTransform.from_translation(80.0, 0.0)
        self.assertEqual(t.forward_box(Box.from_shape((100, 100))), Box((80, 0), (180, 100)))
        self.assertEqual(t.reverse_box(Box((80, 0), (180, 100))), Box((0, 0), (100, 100)))
