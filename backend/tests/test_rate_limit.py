import pathlib
import sys
import unittest
from unittest import mock

BACKEND_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from fastapi import FastAPI
from fastapi.testclient import TestClient

from ledger_api.core.rate_limit import RateLimiter, install_rate_limit


class RateLimiterTests(unittest.TestCase):
    def test_local_window_behavior(self):
        limiter = RateLimiter(redis_url=None, key_prefix="test")
        key = "ip:127.0.0.1"

        self.assertFalse(limiter.exceeded(key, limit=2, window_seconds=60))
        self.assertFalse(limiter.exceeded(key, limit=2, window_seconds=60))
        self.assertTrue(limiter.exceeded(key, limit=2, window_seconds=60))
        self.assertFalse(limiter.exceeded("ip:10.0.0.2", limit=2, window_seconds=60))

    def test_idle_callers_are_evicted(self):
        limiter = RateLimiter(redis_url=None, key_prefix="test")
        clock = mock.Mock()
        clock.time.side_effect = [1000.0, 1000.5, 1200.0]

        with mock.patch("ledger_api.core.rate_limit.time", clock):
            limiter.exceeded("ip:10.0.0.1", limit=5, window_seconds=60)
            limiter.exceeded("ip:10.0.0.2", limit=5, window_seconds=60)
            self.assertEqual(limiter.tracked_keys(), 2)
            limiter.exceeded("ip:10.0.0.3", limit=5, window_seconds=60)

        self.assertEqual(limiter.tracked_keys(), 1)

    def test_middleware_answers_429_with_message(self):
        app = FastAPI()
        install_rate_limit(app, RateLimiter(redis_url=None, key_prefix="test"), limit=1, window_seconds=60)

        @app.get("/ping")
        def ping():
            return {"ok": True}

        client = TestClient(app)
        headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}

        self.assertEqual(client.get("/ping", headers=headers).status_code, 200)
        res = client.get("/ping", headers=headers)
        self.assertEqual(res.status_code, 429)
        self.assertEqual(res.json(), {"message": "Too many requests, please try again later."})
        self.assertEqual(client.get("/ping", headers={"x-forwarded-for": "198.51.100.1"}).status_code, 200)


if __name__ == "__main__":
    unittest.main()
