import unittest

from unittest import mock

import numpy as np

import color_space
from color_space import ColorPaletteSpace, closest_points_on_triangles
from palettes import NORD, ConvexHullError, parse_hex

NORD_RGB = [parse_hex(c) for c in NORD]

# Corners of the cube [50, 200]^3
CUBE = [(r, g, b) for r in (50, 200) for g in (50, 200) for b in (50, 200)]


def random_pixels(shape=(32, 24, 3), seed=0):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=shape, dtype=np.uint8)


def colors_of(pixels):
    return {tuple(int(c) for c in px) for px in pixels.reshape(-1, 3)}


class TestNearest(unittest.TestCase):

    def test_black_and_white(self):
        space = ColorPaletteSpace([(0, 0, 0), (255, 255, 255)])
        self.assertEqual(space.get_color((10, 20, 30)), (0, 0, 0))
        self.assertEqual(space.get_color((200, 220, 180)), (255, 255, 255))

    def test_every_pixel_is_a_palette_color(self):
        for metric in ("rgb", "oklab"):
            space = ColorPaletteSpace(NORD_RGB, metric=metric)
            mapped = space.map_pixels(random_pixels())
            self.assertEqual(mapped.shape, (32, 24, 3))
            self.assertEqual(mapped.dtype, np.uint8)
            self.assertTrue(colors_of(mapped) <= set(NORD_RGB), metric)

    def test_palette_colors_are_fixed_points(self):
        rng = np.random.default_rng(1)
        indices = rng.integers(0, len(NORD_RGB), size=(20, 10))
        pixels = np.array(NORD_RGB, dtype=np.uint8)[indices]
        for metric in ("rgb", "oklab"):
            space = ColorPaletteSpace(NORD_RGB, metric=metric)
            np.testing.assert_array_equal(space.map_pixels(pixels), pixels)

    def test_red_green(self):
        space = ColorPaletteSpace([(255, 0, 0), (0, 255, 0)])
        self.assertEqual(space.get_color((200, 30, 40)), (255, 0, 0))
        self.assertEqual(space.get_color((10, 140, 90)), (0, 255, 0))
        self.assertTrue(colors_of(space.map_pixels(random_pixels())) <= {(255, 0, 0), (0, 255, 0)})

    def test_single_color(self):
        space = ColorPaletteSpace([(1, 2, 3)])
        self.assertEqual(colors_of(space.map_pixels(random_pixels())), {(1, 2, 3)})

    def test_does_not_modify_input(self):
        pixels = random_pixels()
        before = pixels.copy()
        ColorPaletteSpace(NORD_RGB).map_pixels(pixels)
        np.testing.assert_array_equal(pixels, before)

    def test_empty_input(self):
        mapped = ColorPaletteSpace(NORD_RGB).map_pixels(np.zeros((0, 3), dtype=np.uint8))
        self.assertEqual(mapped.shape, (0, 3))


class TestDither(unittest.TestCase):

    def test_every_pixel_is_a_palette_color(self):
        space = ColorPaletteSpace(NORD_RGB)
        dithered = space.dither_pixels(random_pixels((16, 12, 3)))
        self.assertEqual(dithered.shape, (16, 12, 3))
        self.assertTrue(colors_of(dithered) <= set(NORD_RGB))

    def test_palette_colors_are_fixed_points(self):
        palette = [(0, 0, 0), (2, 2, 2), (4, 0, 0)]
        rng = np.random.default_rng(5)
        pixels = np.array(palette, dtype=np.uint8)[rng.integers(0, 3, size=(10, 10))]
        np.testing.assert_array_equal(ColorPaletteSpace(palette).dither_pixels(pixels), pixels)

    def test_mid_gray_alternates(self):
        space = ColorPaletteSpace([(0, 0, 0), (255, 255, 255)])
        pixels = np.full((8, 8, 3), 128, dtype=np.uint8)
        dithered = space.dither_pixels(pixels)
        self.assertEqual(colors_of(dithered), {(0, 0, 0), (255, 255, 255)})
        white = np.count_nonzero(dithered[..., 0] == 255)
        self.assertTrue(24 <= white <= 40, white)

    def test_needs_nearest_mode(self):
        with self.assertRaises(ValueError):
            ColorPaletteSpace(CUBE, mode="hull").dither_pixels(random_pixels())


class TestArguments(unittest.TestCase):

    def test_unknown_mode(self):
        with self.assertRaises(ValueError):
            ColorPaletteSpace(NORD_RGB, mode="median")

    def test_unknown_metric(self):
        with self.assertRaises(ValueError):
            ColorPaletteSpace(NORD_RGB, metric="hsv")

    def test_hull_needs_rgb(self):
        with self.assertRaises(ValueError):
            ColorPaletteSpace(NORD_RGB, mode="hull", metric="oklab")

    def test_empty_palette(self):
        with self.assertRaises(ValueError):
            ColorPaletteSpace([])


class TestHull(unittest.TestCase):

    def setUp(self):
        self.space = ColorPaletteSpace(CUBE, mode="hull")

    def test_inside_is_unchanged(self):
        self.assertEqual(self.space.get_color((100, 120, 150)), (100, 120, 150))
        self.assertEqual(self.space.get_color((50, 50, 50)), (50, 50, 50))
        self.assertEqual(self.space.get_color((200, 125, 60)), (200, 125, 60))

    def test_outside_moves_to_vertex(self):
        self.assertEqual(self.space.get_color((0, 0, 0)), (50, 50, 50))
        self.assertEqual(self.space.get_color((255, 255, 255)), (200, 200, 200))

    def test_outside_moves_to_face(self):
        self.assertEqual(self.space.get_color((255, 100, 120)), (200, 100, 120))
        self.assertEqual(self.space.get_color((90, 10, 160)), (90, 50, 160))

    def test_outside_moves_to_edge(self):
        self.assertEqual(self.space.get_color((255, 255, 100)), (200, 200, 100))

    def test_result_stays_in_cube(self):
        mapped = self.space.map_pixels(random_pixels())
        self.assertTrue(np.all(mapped >= 50))
        self.assertTrue(np.all(mapped <= 200))

    def test_small_batches_match(self):
        pixels = random_pixels()
        expected = self.space.map_pixels(pixels)
        with mock.patch.object(color_space, "HULL_CHUNK", 5):
            np.testing.assert_array_equal(self.space.map_pixels(pixels), expected)

    def test_large_palette_hull(self):
        rng = np.random.default_rng(6)
        palette = [tuple(int(c) for c in px) for px in rng.integers(0, 256, size=(300, 3))]
        space = ColorPaletteSpace(palette, mode="hull")
        mapped = space.map_pixels(random_pixels((8, 8, 3)))
        self.assertEqual(mapped.shape, (8, 8, 3))
        self.assertEqual(space.get_color((128, 128, 128)), (128, 128, 128))

    def test_nord_spans_a_hull(self):
        space = ColorPaletteSpace(NORD_RGB, mode="hull")
        for color in NORD_RGB:
            self.assertEqual(space.get_color(color), color)

    def test_too_few_colors(self):
        with self.assertRaises(ConvexHullError):
            ColorPaletteSpace([(255, 0, 0), (0, 255, 0), (0, 0, 255)], mode="hull")

    def test_coplanar_colors(self):
        flat = [(0, 0, 0), (255, 0, 0), (0, 255, 0), (255, 255, 0)]
        with self.assertRaises(ConvexHullError):
            ColorPaletteSpace(flat, mode="hull")


class TestClosestPointsOnTriangles(unittest.TestCase):

    def test_regions(self):
        triangles = np.array([[[0, 0, 0], [10, 0, 0], [0, 10, 0]]], dtype=np.float64)
        points = np.array([
            [2, 2, 5],     # above the face
            [-5, -5, 0],   # vertex a
            [20, -1, 0],   # vertex b
            [-1, 20, 3],   # vertex c
            [5, -4, 0],    # edge ab
            [-4, 5, 0],    # edge ac
            [10, 10, 0],   # edge bc
        ], dtype=np.float64)
        expected = np.array([
            [2, 2, 0],
            [0, 0, 0],
            [10, 0, 0],
            [0, 10, 0],
            [5, 0, 0],
            [0, 5, 0],
            [5, 5, 0],
        ], dtype=np.float64)
        np.testing.assert_allclose(closest_points_on_triangles(points, triangles), expected)

    def test_picks_closest_triangle(self):
        triangles = np.array([
            [[0, 0, 0], [10, 0, 0], [0, 10, 0]],
            [[0, 0, 100], [10, 0, 100], [0, 10, 100]],
        ], dtype=np.float64)
        points = np.array([[1, 1, 90]], dtype=np.float64)
        np.testing.assert_allclose(closest_points_on_triangles(points, triangles), [[1, 1, 100]])


if __name__ == '__main__':
    unittest.main()
