import base64
import io
import unittest

from PIL import Image

from dinoscan.client.codec import (
    CompressionPreset,
    EncodedPayload,
    RawMedia,
    decode_file,
    decode_frame,
    encode,
    open_stream,
    target_size,
)
from dinoscan.client.shaper import CAPTURE_LADDER, UPLOAD_LADDER, shape


def _noisy(width, height):
    # Noise defeats JPEG compression, so quality and size actually matter.
    return RawMedia(Image.effect_noise((width, height), 64).convert("RGB"))


class CodecTests(unittest.TestCase):
    def test_long_side_is_pinned_to_max_dimension(self):
        for w, h in [(4032, 3024), (3024, 4032), (1999, 1001), (1281, 720)]:
            nw, nh = target_size(w, h, 1280)
            self.assertEqual(max(nw, nh), 1280)
            self.assertAlmostEqual(nw / nh, w / h, delta=(w / h) / min(nw, nh) + 1e-9)

    def test_never_upscales(self):
        self.assertEqual(target_size(640, 480, 1280), (640, 480))

    def test_encode_outputs_jpeg_at_target_size(self):
        payload = encode(_noisy(2000, 1500), CompressionPreset(800, 0.6))
        raw = base64.b64decode(payload.base64)
        self.assertTrue(raw.startswith(b"\xff\xd8\xff"))
        with Image.open(io.BytesIO(raw)) as img:
            self.assertEqual(img.size, (800, 600))
        self.assertEqual(payload.mime_type, "image/jpeg")
        self.assertEqual(payload.approximate_bytes, len(payload.base64) * 3 // 4)
        self.assertLessEqual(abs(payload.approximate_bytes - len(raw)), 2)

    def test_rgba_upload_is_flattened(self):
        buf = io.BytesIO()
        Image.new("RGBA", (300, 200), (255, 0, 0, 128)).save(buf, format="PNG")
        media = decode_file(buf.getvalue())
        payload = encode(media, CompressionPreset(100, 0.8))
        self.assertEqual((payload.width, payload.height), (100, 67))

    def test_decode_frame(self):
        media = decode_frame(b"\x00" * (4 * 3 * 3), 4, 3)
        self.assertEqual((media.width, media.height, media.source), (4, 3, "capture"))

    def test_invalid_preset(self):
        with self.assertRaises(ValueError):
            CompressionPreset(800, 0)
        with self.assertRaises(ValueError):
            CompressionPreset(0, 0.5)

    def test_stream_is_stopped_on_error(self):
        class FakeStream:
            started = stopped = False

            def start(self):
                self.started = True

            def read_frame(self):
                raise RuntimeError("camera unplugged")

            def stop(self):
                self.stopped = True

        stream = FakeStream()
        with self.assertRaises(RuntimeError):
            with open_stream(stream) as s:
                s.read_frame()
        self.assertTrue(stream.stopped)

    def test_stream_is_stopped_when_setup_fails(self):
        class FailingStart:
            stopped = False

            def start(self):
                raise PermissionError("camera denied")

            def stop(self):
                self.stopped = True

        stream = FailingStart()
        with self.assertRaises(PermissionError):
            with open_stream(stream):
                pass
        self.assertTrue(stream.stopped)


class _FakeEncoder:
    def __init__(self, sizes):
        self.sizes = list(sizes)
        self.calls = []

    def __call__(self, raw, preset):
        self.calls.append(preset)
        size = self.sizes[len(self.calls) - 1]
        return EncodedPayload(base64="A" * (size * 4 // 3), approximate_bytes=size)


class ShaperTests(unittest.TestCase):
    ladder = (CompressionPreset(1000, 0.8), CompressionPreset(800, 0.7), CompressionPreset(600, 0.6))

    def test_stops_at_first_fit(self):
        encoder = _FakeEncoder([500, 300, 100])
        result = shape(_noisy(10, 10), budget=300, ladder=self.ladder, encoder=encoder)
        self.assertEqual(len(encoder.calls), 2)
        self.assertEqual(result.preset, self.ladder[1])
        self.assertEqual(result.payload.approximate_bytes, 300)
        self.assertTrue(result.within_budget)

    def test_exhausted_ladder_returns_last_attempt(self):
        encoder = _FakeEncoder([500, 400, 350])
        result = shape(_noisy(10, 10), budget=100, ladder=self.ladder, encoder=encoder)
        self.assertEqual(len(encoder.calls), len(self.ladder))
        self.assertIs(result.payload, result.attempts[-1])
        self.assertEqual(result.preset, self.ladder[-1])
        self.assertFalse(result.within_budget)

    def test_real_encode_meets_budget(self):
        result = shape(_noisy(3000, 2000), budget=60_000, ladder=UPLOAD_LADDER)
        self.assertLessEqual(len(result.attempts), len(UPLOAD_LADDER))
        if result.within_budget:
            self.assertLessEqual(result.payload.approximate_bytes, 60_000)
        for attempt in result.attempts[:-1]:
            self.assertGreater(attempt.approximate_bytes, 60_000)

    def test_ladder_chosen_by_source(self):
        encoder = _FakeEncoder([1])
        capture = RawMedia(Image.new("RGB", (10, 10)), source="capture")
        shape(capture, budget=10, encoder=encoder)
        self.assertEqual(encoder.calls[0], CAPTURE_LADDER[0])

    def test_ladders_descend(self):
        for ladder in (CAPTURE_LADDER, UPLOAD_LADDER):
            dims = [p.max_dimension for p in ladder]
            self.assertEqual(dims, sorted(dims, reverse=True))
        self.assertEqual(CAPTURE_LADDER[0], CompressionPreset(1280, 0.75))
        self.assertEqual(UPLOAD_LADDER[-1], CompressionPreset(480, 0.52))


if __name__ == "__main__":
    unittest.main()
