import unittest

import numpy as np

from detection import (
    BoundingBox,
    Point,
    detect,
    extract,
    resize_template,
    scale_factors,
    search,
)


def binary_noise(rng: np.random.Generator, height: int, width: int) -> np.ndarray:
    return (rng.integers(0, 2, size=(height, width, 3)) * 255).astype(np.uint8)


def paste(canvas: np.ndarray, image: np.ndarray, x: int, y: int) -> None:
    h, w = image.shape[:2]
    canvas[y : y + h, x : x + w] = image


class ScaleFactorTests(unittest.TestCase):
    def test_endpoints_are_included(self) -> None:
        factors = scale_factors(0.1, 1.0, 100)
        self.assertEqual(len(factors), 101)
        self.assertEqual(factors[0], 0.1)
        self.assertEqual(factors[-1], 1.0)

    def test_zero_steps_searches_only_minimum(self) -> None:
        self.assertEqual(list(scale_factors(0.7, 1.3, 0)), [0.7])


class SearchTests(unittest.TestCase):
    def test_infeasible_scales_are_skipped(self) -> None:
        rng = np.random.default_rng(1)
        template = binary_noise(rng, 40, 40)
        target = binary_noise(rng, 30, 30)

        # 20, 24 and 28 px templates fit, 32 px and above do not
        surfaces = search(template, target, 0.5, 1.0, 5)

        self.assertEqual(len(surfaces), 3)
        for surface, (width, height) in surfaces:
            self.assertEqual(surface.shape, (30 - height + 1, 30 - width + 1))


class ExtractTests(unittest.TestCase):
    def test_picks_peaks_and_suppresses_neighbours(self) -> None:
        surface = np.zeros((50, 50), dtype=np.float32)
        surface[10, 10] = 0.95
        surface[11, 11] = 0.94
        surface[40, 40] = 0.90
        before = surface.copy()

        matches = extract(surface, (8, 8), 0.5, 5)

        self.assertEqual(len(matches), 2)
        self.assertEqual(matches[0].box, BoundingBox(Point(10, 10), Point(18, 18)))
        self.assertAlmostEqual(matches[0].confidence, 0.95, places=5)
        self.assertEqual(matches[1].box.top_left, Point(40, 40))
        np.testing.assert_array_equal(surface, before)

    def test_stops_at_threshold_and_count(self) -> None:
        surface = np.zeros((60, 60), dtype=np.float32)
        surface[5, 5] = 0.9
        surface[5, 40] = 0.8
        surface[40, 5] = 0.3

        self.assertEqual(len(extract(surface, (4, 4), 0.5, 10)), 2)
        self.assertEqual(len(extract(surface, (4, 4), 0.1, 1)), 1)


class DetectTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rng = np.random.default_rng(7)
        self.template = binary_noise(self.rng, 40, 40)

    def test_finds_resized_template_at_every_sampled_scale(self) -> None:
        for scale in scale_factors(0.5, 1.0, 5):
            with self.subTest(scale=float(scale)):
                placed = resize_template(self.template, scale)
                canvas = np.zeros((200, 200, 3), dtype=np.uint8)
                paste(canvas, placed, 50, 60)

                matches = detect(self.template, canvas, 1, 0.5, 1.0, 5, 0.99)

                self.assertEqual(len(matches), 1)
                box = matches[0].box
                self.assertEqual(box.top_left, Point(50, 60))
                self.assertEqual((box.height, box.width), placed.shape[:2])
                self.assertGreaterEqual(matches[0].confidence, 0.99)

    def test_one_match_per_separated_instance(self) -> None:
        template = binary_noise(self.rng, 20, 20)
        canvas = np.zeros((140, 140, 3), dtype=np.uint8)
        corners = [(10, 10), (80, 10), (10, 80)]
        for x, y in corners:
            paste(canvas, template, x, y)

        matches = detect(template, canvas, 10, 1.0, 1.0, 0, 0.99)

        self.assertEqual(len(matches), 3)
        self.assertEqual(
            sorted(m.box.top_left for m in matches),
            sorted(Point(x, y) for x, y in corners),
        )

    def test_count_threshold_and_order(self) -> None:
        template = binary_noise(self.rng, 20, 20)
        canvas = binary_noise(self.rng, 150, 150)
        paste(canvas, template, 30, 30)

        matches = detect(template, canvas, 25, 0.6, 1.0, 4, 0.4)

        self.assertLessEqual(len(matches), 25)
        self.assertTrue(all(m.confidence >= 0.4 for m in matches))
        confidences = [m.confidence for m in matches]
        self.assertEqual(confidences, sorted(confidences, reverse=True))
        self.assertEqual(matches[0].box.top_left, Point(30, 30))

    def test_count_is_capped(self) -> None:
        template = binary_noise(self.rng, 10, 10)
        canvas = np.zeros((100, 100, 3), dtype=np.uint8)
        for x in range(0, 100, 20):
            paste(canvas, template, x, 5)

        matches = detect(template, canvas, 2, 1.0, 1.0, 0, 0.99)

        self.assertEqual(len(matches), 2)

    def test_target_cropped_from_template_finds_nothing(self) -> None:
        crop = np.ascontiguousarray(self.template[5:35, 5:35])

        self.assertEqual(detect(self.template, crop, 1, 1.0, 1.0, 0, 0.99), [])

    def test_template_larger_than_target_finds_nothing(self) -> None:
        canvas = np.zeros((20, 20, 3), dtype=np.uint8)
        self.assertEqual(detect(self.template, canvas, 3, 0.8, 1.0, 2, 0.5), [])

    def test_empty_inputs_are_rejected(self) -> None:
        canvas = np.zeros((50, 50, 3), dtype=np.uint8)
        empty = np.zeros((0, 0, 3), dtype=np.uint8)
        with self.assertRaises(ValueError):
            detect(self.template, empty, 1, 0.5, 1.0, 5, 0.9)
        with self.assertRaises(ValueError):
            detect(empty, canvas, 1, 0.5, 1.0, 5, 0.9)


if __name__ == "__main__":
    unittest.main()
