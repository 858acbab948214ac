import base64
import io
import json
import time
import unittest

import httpx
from PIL import Image

from dinoscan.client.codec import EncodedPayload, RawMedia, open_stream
from dinoscan.client.inference import AnalysisError, InferenceClient
from dinoscan.client.location import resolve_location
from dinoscan.client.scanner import FossilScanner, ScanInProgress, failure_message

PAYLOAD = EncodedPayload(base64="/9j/AAAA", approximate_bytes=6)


def _client(handler):
    return InferenceClient(base_url="http://gateway.test", transport=httpx.MockTransport(handler))


class InferenceClientTests(unittest.TestCase):
    def test_analyze_fills_missing_fields(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"Name": "副栉龙", "Confidence": 64})

        result = _client(handler).analyze(PAYLOAD)

        self.assertEqual(seen["path"], "/analyze")
        self.assertEqual(seen["body"], {"imageBase64": "/9j/AAAA", "mimeType": "image/jpeg"})
        self.assertEqual(result.Name, "副栉龙")
        self.assertEqual(result.Confidence, 64)
        self.assertEqual(result.Era, "待定")
        self.assertEqual(result.Rarity, "普通")

    def test_error_carries_status_and_detail(self):
        def handler(request):
            return httpx.Response(413, json={"error": "Image too large", "detail": "图片过大（约 2.00MB）"})

        with self.assertRaises(AnalysisError) as ctx:
            _client(handler).analyze(PAYLOAD)
        self.assertEqual(ctx.exception.status, 413)
        self.assertIn("2.00MB", ctx.exception.body)

    def test_plain_text_error_is_truncated(self):
        with self.assertRaises(AnalysisError) as ctx:
            _client(lambda r: httpx.Response(502, text="e" * 5000)).analyze(PAYLOAD)
        self.assertEqual(len(ctx.exception.body), 2000)

    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with self.assertRaises(AnalysisError) as ctx:
            _client(handler).analyze(PAYLOAD)
        self.assertEqual(ctx.exception.status, 0)

    def test_insight_uses_text_mode(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"title": "剑龙 简报", "content": "..."})

        data = _client(handler).insight("讲讲剑龙", {"scene": "toolbox_brief"})
        self.assertEqual(data["title"], "剑龙 简报")
        self.assertEqual(seen["body"]["mode"], "text")
        self.assertEqual(seen["body"]["context"], {"scene": "toolbox_brief"})

    def test_ping(self):
        self.assertTrue(_client(lambda r: httpx.Response(200, text="pong")).ping())
        self.assertFalse(_client(lambda r: httpx.Response(500, text="down")).ping())


class LocationTests(unittest.TestCase):
    def test_provider_value_is_used(self):
        coords = resolve_location(lambda: (30.5, 104.0))
        self.assertEqual((coords.lat, coords.lng), (30.5, 104.0))

    def test_failure_falls_back(self):
        def denied():
            raise PermissionError("geolocation denied")

        coords = resolve_location(denied)
        self.assertEqual((coords.lat, coords.lng), (39.9042, 116.4074))

    def test_slow_provider_falls_back(self):
        def slow():
            time.sleep(0.5)
            return (1.0, 2.0)

        coords = resolve_location(slow, timeout=0.05)
        self.assertEqual((coords.lat, coords.lng), (39.9042, 116.4074))

    def test_no_provider(self):
        self.assertEqual(resolve_location(None).lat, 39.9042)


class ScannerTests(unittest.TestCase):
    def _media(self):
        return RawMedia(Image.new("RGB", (64, 48), (120, 90, 60)), source="capture")

    def test_scan_builds_record(self):
        client = _client(lambda r: httpx.Response(200, json={"Name": "霸王龙", "Rarity": "传说", "Confidence": 93}))
        scanner = FossilScanner(client=client, locate=lambda: (43.8, 87.6))

        record = scanner.scan(self._media())

        self.assertEqual(record.name, "霸王龙")
        self.assertEqual(record.rarity, "传说")
        self.assertEqual(record.matchConfidence, 93)
        self.assertEqual(record.location.lat, 43.8)
        self.assertTrue(record.imageUrl.startswith("data:image/jpeg;base64,"))
        self.assertFalse(scanner.busy)

    def test_busy_flag_cleared_after_failure(self):
        scanner = FossilScanner(client=_client(lambda r: httpx.Response(500, json={"error": "Missing env", "detail": "x"})))

        record, message = scanner.try_scan(self._media())

        self.assertIsNone(record)
        self.assertTrue(message.startswith("分析失败：\n\n"))
        self.assertIn("Missing env", message)
        self.assertFalse(scanner.busy)

    def test_reentry_is_refused(self):
        scanner = FossilScanner(client=_client(lambda r: httpx.Response(200, json={})))
        scanner.busy = True
        with self.assertRaises(ScanInProgress):
            scanner.scan(self._media())

    def test_scan_file_decodes_png(self):
        buf = io.BytesIO()
        Image.new("RGB", (200, 100), (200, 180, 150)).save(buf, format="PNG")
        client = _client(lambda r: httpx.Response(200, json={"Name": "始祖鸟"}))
        scanner = FossilScanner(client=client, locate=lambda: (40.0, 120.0))

        record = scanner.scan_file(buf.getvalue())

        self.assertEqual(record.name, "始祖鸟")
        self.assertTrue(record.imageUrl.startswith("data:image/jpeg;base64,"))
        self.assertFalse(scanner.busy)

    def test_scan_stream_reads_one_frame(self):
        media = self._media()

        class FakeStream:
            reads = 0

            def start(self):
                pass

            def read_frame(self):
                self.reads += 1
                return media

            def stop(self):
                pass

        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"Name": "鹦鹉嘴龙"})

        stream = FakeStream()
        scanner = FossilScanner(client=_client(handler), locate=lambda: (41.0, 121.0))
        with open_stream(stream) as s:
            record = scanner.scan_stream(s)

        self.assertEqual(stream.reads, 1)
        self.assertEqual(record.name, "鹦鹉嘴龙")
        self.assertEqual(base64.b64decode(seen["body"]["imageBase64"])[:3], b"\xff\xd8\xff")

    def test_failure_message(self):
        self.assertEqual(failure_message(AnalysisError(502, "boom")), "分析失败：\n\nAPI 502: boom")


if __name__ == "__main__":
    unittest.main()
