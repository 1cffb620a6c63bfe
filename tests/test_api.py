#!/usr/bin/env python3
"""
HTTP layer tests.

1. retry_transient: backoff between transient failures, nothing else retried
2. ApiClient: envelope unwrapping, raw bodies, transport errors
"""

import os
import sys
import unittest

import httpx

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from garden.api import ApiClient, classify_status, retry_transient
from garden.core import Result, ErrorKind


class ScriptedCall:
    """Returns the given results in order and counts calls."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def __call__(self) -> Result:
        self.calls += 1
        return self.results.pop(0)


class TestRetryTransient(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.delays = []

    async def sleep(self, seconds: float):
        self.delays.append(seconds)

    async def test_transient_then_ok(self):
        call = ScriptedCall(Result.err(ErrorKind.TRANSIENT, "503"), Result.ok(7))
        res = await retry_transient(call, attempts=3, backoff=1.0, sleep=self.sleep)

        self.assertEqual(res.val, 7)
        self.assertEqual(call.calls, 2)
        self.assertEqual(self.delays, [1.0])

    async def test_backoff_doubles(self):
        call = ScriptedCall(
            Result.err(ErrorKind.TRANSIENT, "timeout"),
            Result.err(ErrorKind.TRANSIENT, "timeout"),
            Result.err(ErrorKind.TRANSIENT, "timeout"),
            Result.ok("done"),
        )
        res = await retry_transient(call, attempts=4, backoff=0.5, sleep=self.sleep)

        self.assertEqual(res.val, "done")
        self.assertEqual(self.delays, [0.5, 1.0, 2.0])

    async def test_validation_not_retried(self):
        call = ScriptedCall(Result.err(ErrorKind.VALIDATION, "insufficient balance"))
        res = await retry_transient(call, attempts=3, backoff=1.0, sleep=self.sleep)

        self.assertEqual(res.error.message, "insufficient balance")
        self.assertEqual(call.calls, 1)
        self.assertEqual(self.delays, [])

    async def test_auth_not_retried(self):
        call = ScriptedCall(Result.err(ErrorKind.AUTH, "bad signature"))
        res = await retry_transient(call, attempts=3, sleep=self.sleep)
        self.assertEqual(res.error.kind, ErrorKind.AUTH)
        self.assertEqual(call.calls, 1)

    async def test_attempts_exhausted_returns_last_error(self):
        call = ScriptedCall(
            Result.err(ErrorKind.TRANSIENT, "first"),
            Result.err(ErrorKind.TRANSIENT, "second"),
            Result.err(ErrorKind.TRANSIENT, "third"),
        )
        res = await retry_transient(call, attempts=3, backoff=1.0, sleep=self.sleep)

        self.assertEqual(res.error.kind, ErrorKind.TRANSIENT)
        self.assertEqual(res.error.message, "third")
        self.assertEqual(call.calls, 3)
        self.assertEqual(self.delays, [1.0, 2.0])

    async def test_single_attempt(self):
        call = ScriptedCall(Result.err(ErrorKind.TRANSIENT, "down"))
        res = await retry_transient(call, attempts=1, sleep=self.sleep)
        self.assertEqual(res.error.message, "down")
        self.assertEqual(call.calls, 1)

    async def test_exception_propagates(self):
        async def broken():
            raise RuntimeError("bug")

        with self.assertRaises(RuntimeError):
            await retry_transient(broken, attempts=3, sleep=self.sleep)
        self.assertEqual(self.delays, [])


class TestApiClient(unittest.IsolatedAsyncioTestCase):

    def client(self, handler) -> ApiClient:
        return ApiClient("https://svc.test/", transport=httpx.MockTransport(handler))

    async def test_envelope_unwrapped(self):
        client = self.client(lambda r: httpx.Response(200, json={"status": "Ok", "result": [1, 2]}))
        res = await client.get("items")
        await client.close()
        self.assertEqual(res.val, [1, 2])

    async def test_plain_json_passed_through(self):
        client = self.client(lambda r: httpx.Response(200, json={"confirmed": True}))
        self.assertEqual((await client.get("tx/ab/status")).val, {"confirmed": True})

    async def test_raw_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = request.content.decode()
            return httpx.Response(200, text="abcd\n")

        res = await self.client(handler).post("tx", content="0200", raw=True)
        self.assertEqual(res.val, "abcd")
        self.assertEqual(seen["body"], "0200")

    async def test_raw_error_keeps_body_text(self):
        client = self.client(lambda r: httpx.Response(400, text="min relay fee not met"))
        res = await client.post("tx", content="00", raw=True)
        self.assertEqual(res.error.kind, ErrorKind.VALIDATION)
        self.assertEqual(res.error.message, "min relay fee not met")

    async def test_connection_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        res = await self.client(handler).get("items")
        self.assertEqual(res.error.kind, ErrorKind.TRANSIENT)

    async def test_invalid_json_is_transient(self):
        client = self.client(lambda r: httpx.Response(200, text="<html>"))
        res = await client.get("items")
        self.assertEqual(res.error.kind, ErrorKind.TRANSIENT)

    async def test_client_recreated_after_close(self):
        client = self.client(lambda r: httpx.Response(200, json={"status": "Ok", "result": 1}))
        await client.get("a")
        await client.close()
        self.assertEqual((await client.get("a")).val, 1)

    def test_classify_status(self):
        self.assertEqual(classify_status(401), ErrorKind.AUTH)
        self.assertEqual(classify_status(403), ErrorKind.AUTH)
        self.assertEqual(classify_status(429), ErrorKind.TRANSIENT)
        self.assertEqual(classify_status(502), ErrorKind.TRANSIENT)
        self.assertEqual(classify_status(404), ErrorKind.VALIDATION)


if __name__ == "__main__":
    unittest.main(verbosity=2)
