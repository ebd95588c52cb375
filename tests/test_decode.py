import unittest

import numpy as np

from yolo_post.config import ModelParameters
from yolo_post.decode import DecodedImage, YoloDecoder, select_class
from yolo_post.errors import ShapeError
from yolo_post.letterbox import LetterboxGeometry
from yolo_post.types import ClassificationResult, Keypoint, Task


def _anchors(columns):
    """Stack per-anchor channel vectors into a (1, channels, anchors) output."""
    return np.array(columns, dtype=np.float32).T[None, ...]


class TestSelectClass(unittest.TestCase):
    def test_lowest_index_wins_ties(self) -> None:
        scores = np.array(
            [
                [0.5, 0.2],
                [0.5, 0.7],
                [0.1, 0.7],
            ],
            dtype=np.float32,
        )
        ids, conf = select_class(scores)
        self.assertEqual(ids.tolist(), [0, 1])
        self.assertTrue(np.allclose(conf, [0.5, 0.7]))

    def test_strictly_greater_replaces(self) -> None:
        ids, conf = select_class(np.array([0.1, 0.3, 0.2, 0.30001]))
        self.assertEqual(int(ids), 3)
        self.assertAlmostEqual(float(conf), 0.30001)

    def test_all_equal_picks_first(self) -> None:
        ids, _ = select_class(np.full((5, 3), 0.4))
        self.assertEqual(ids.tolist(), [0, 0, 0])

    def test_empty_rejected(self) -> None:
        with self.assertRaises(ShapeError):
            select_class(np.zeros((0, 4)))


class TestDecodeDetect(unittest.TestCase):
    def setUp(self) -> None:
        self.params = ModelParameters(task=Task.DETECT, num_classes=2, conf_threshold=0.5)
        self.decoder = YoloDecoder(self.params)

    def test_box_mapped_to_image(self) -> None:
        preds = _anchors([[320, 320, 100, 50, 0.1, 0.8]])
        (decoded,) = self.decoder.decode(preds, [(640, 480)])
        self.assertIsInstance(decoded, DecodedImage)
        (cand,) = decoded.candidates
        self.assertEqual(cand.class_id, 1)
        self.assertAlmostEqual(cand.confidence, 0.8, places=6)
        self.assertEqual(cand.bbox.as_xywh(), (270.0, 215.0, 100.0, 50.0))
        self.assertIsNone(cand.keypoints)
        self.assertIsNone(cand.coefficients)

    def test_below_threshold_dropped_equal_kept(self) -> None:
        preds = _anchors(
            [
                [100, 200, 10, 10, 0.49, 0.1],
                [300, 300, 10, 10, 0.5, 0.1],
            ]
        )
        (decoded,) = self.decoder.decode(preds, [(640, 480)])
        self.assertEqual(len(decoded.candidates), 1)
        self.assertEqual(decoded.candidates[0].confidence, 0.5)

    def test_no_candidates_is_empty_not_error(self) -> None:
        preds = _anchors([[100, 200, 10, 10, 0.1, 0.1]])
        (decoded,) = self.decoder.decode(preds, [(640, 480)])
        self.assertEqual(decoded.candidates, [])

    def test_box_shrinks_at_border(self) -> None:
        # image center (20, 20), size 100x60 -> spans x [-30, 70], y [-10, 50]
        preds = _anchors([[20, 100, 100, 60, 0.9, 0.0]])
        (decoded,) = self.decoder.decode(preds, [(640, 480)])
        box = decoded.candidates[0].bbox
        self.assertEqual(box.as_xyxy(), (0.0, 0.0, 70.0, 50.0))

    def test_boxes_inside_image(self) -> None:
        rng = np.random.default_rng(0)
        a = 200
        preds = np.zeros((1, 6, a), dtype=np.float32)
        preds[0, 0:2] = rng.uniform(-50, 700, size=(2, a))
        preds[0, 2:4] = rng.uniform(0, 400, size=(2, a))
        preds[0, 4:6] = rng.uniform(0, 1, size=(2, a))
        (decoded,) = self.decoder.decode(preds, [(500, 300)])
        self.assertTrue(decoded.candidates)
        for c in decoded.candidates:
            self.assertGreaterEqual(c.bbox.x, 0.0)
            self.assertGreaterEqual(c.bbox.y, 0.0)
            self.assertGreaterEqual(c.bbox.width, 0.0)
            self.assertGreaterEqual(c.bbox.height, 0.0)
            self.assertLessEqual(c.bbox.xmax, 500.0 + 1e-9)
            self.assertLessEqual(c.bbox.ymax, 300.0 + 1e-9)
            self.assertGreaterEqual(c.confidence, self.params.conf_threshold)
            self.assertTrue(0 <= c.class_id < 2)

    def test_class_filter(self) -> None:
        decoder = YoloDecoder(ModelParameters(num_classes=2, conf_threshold=0.5, class_ids=[0]))
        preds = _anchors(
            [
                [100, 200, 10, 10, 0.9, 0.1],
                [300, 300, 10, 10, 0.1, 0.9],
            ]
        )
        (decoded,) = decoder.decode(preds, [(640, 480)])
        self.assertEqual([c.class_id for c in decoded.candidates], [0])

    def test_batch_uses_each_image_size(self) -> None:
        preds = np.concatenate(
            [
                _anchors([[320, 320, 100, 100, 0.9, 0.0]]),
                _anchors([[320, 320, 100, 100, 0.9, 0.0]]),
            ]
        )
        first, second = self.decoder.decode(preds, [(640, 480), (1280, 1280)])
        self.assertEqual(first.candidates[0].bbox.as_xywh(), (270.0, 190.0, 100.0, 100.0))
        self.assertEqual(second.candidates[0].bbox.as_xywh(), (540.0, 540.0, 200.0, 200.0))

    def test_wrong_rank(self) -> None:
        with self.assertRaises(ShapeError):
            self.decoder.decode(np.zeros((6, 10), dtype=np.float32), [(640, 480)])

    def test_wrong_channels(self) -> None:
        with self.assertRaises(ShapeError):
            self.decoder.decode(np.zeros((1, 7, 10), dtype=np.float32), [(640, 480)])

    def test_batch_mismatch(self) -> None:
        with self.assertRaises(ShapeError):
            self.decoder.decode(np.zeros((2, 6, 10), dtype=np.float32), [(640, 480)])

    def test_decode_image_checks_shape(self) -> None:
        geom = LetterboxGeometry.compute((640, 480), (640, 640))
        with self.assertRaises(ShapeError):
            self.decoder.decode_image(np.zeros((5, 10)), geom)


class TestDecodePose(unittest.TestCase):
    def test_keypoints(self) -> None:
        params = ModelParameters(task=Task.POSE, num_classes=1, num_keypoints=3, conf_threshold=0.25, kpt_conf_threshold=0.55)
        preds = _anchors(
            [
                [
                    320, 320, 100, 100, 0.9,
                    100, 180, 0.9,   # -> (100, 100)
                    50, 90, 0.2,     # below keypoint threshold
                    700, 20, 0.6,    # clamped to (640, 0)
                ]
            ]
        )
        (decoded,) = YoloDecoder(params).decode(preds, [(640, 480)])
        kpts = decoded.candidates[0].keypoints
        self.assertEqual(len(kpts), 3)
        self.assertEqual((kpts[0].x, kpts[0].y), (100.0, 100.0))
        self.assertAlmostEqual(kpts[0].confidence, 0.9, places=6)
        self.assertEqual(kpts[1], Keypoint.absent())
        self.assertEqual((kpts[1].x, kpts[1].y, kpts[1].confidence), (0.0, 0.0, 0.0))
        self.assertEqual((kpts[2].x, kpts[2].y), (640.0, 0.0))
        self.assertIsNone(decoded.candidates[0].coefficients)

    def test_pose_channel_count(self) -> None:
        params = ModelParameters(task=Task.POSE, num_classes=1, num_keypoints=17)
        self.assertEqual(params.expected_channels, 56)
        with self.assertRaises(ShapeError):
            YoloDecoder(params).decode(np.zeros((1, 55, 8), dtype=np.float32), [(640, 640)])


class TestDecodeSegment(unittest.TestCase):
    def setUp(self) -> None:
        self.params = ModelParameters(task=Task.SEGMENT, num_classes=1, num_masks=2)
        self.decoder = YoloDecoder(self.params)

    def test_coefficients_copied(self) -> None:
        preds = _anchors([[320, 320, 100, 100, 0.9, 0.25, -1.5]])
        protos = np.zeros((1, 2, 8, 8), dtype=np.float32)
        (decoded,) = self.decoder.decode([preds, protos], [(640, 480)])
        cand = decoded.candidates[0]
        self.assertTrue(np.array_equal(cand.coefficients, np.array([0.25, -1.5], dtype=np.float32)))
        self.assertEqual(decoded.prototypes.shape, (2, 8, 8))

    def test_missing_prototypes(self) -> None:
        preds = _anchors([[320, 320, 100, 100, 0.9, 0.25, -1.5]])
        with self.assertRaises(ShapeError):
            self.decoder.decode(preds, [(640, 480)])

    def test_prototype_channel_mismatch(self) -> None:
        preds = _anchors([[320, 320, 100, 100, 0.9, 0.25, -1.5]])
        with self.assertRaises(ShapeError):
            self.decoder.decode([preds, np.zeros((1, 3, 8, 8), dtype=np.float32)], [(640, 480)])

    def test_prototype_rank(self) -> None:
        preds = _anchors([[320, 320, 100, 100, 0.9, 0.25, -1.5]])
        with self.assertRaises(ShapeError):
            self.decoder.decode((preds, np.zeros((2, 8, 8), dtype=np.float32)), [(640, 480)])


class TestDecodeClassify(unittest.TestCase):
    def test_one_embedding_per_image(self) -> None:
        decoder = YoloDecoder(ModelParameters(task=Task.CLASSIFY))
        probs = np.arange(6, dtype=np.float32).reshape(2, 3)
        results = decoder.decode(probs, [(10, 10), (20, 20)])
        self.assertEqual(len(results), 2)
        self.assertTrue(all(isinstance(r, ClassificationResult) for r in results))
        self.assertEqual(results[1].embedding.tolist(), [3.0, 4.0, 5.0])

        probs[1, 0] = 100.0
        self.assertEqual(results[1].embedding.tolist(), [3.0, 4.0, 5.0])

    def test_batch_mismatch(self) -> None:
        decoder = YoloDecoder(ModelParameters(task=Task.CLASSIFY))
        with self.assertRaises(ShapeError):
            decoder.decode(np.zeros((1, 3), dtype=np.float32), [(10, 10), (20, 20)])


if __name__ == "__main__":
    unittest.main()
