from __future__ import annotations

import json
import unittest

import httpx

from portalclient.errors import NotAuthenticatedError, ResponseValidationError, TransportError
from portalclient.transport import HttpxTransport


class HttpxTransportTests(unittest.IsolatedAsyncioTestCase):
    def make_transport(self, handler, token_provider=None) -> HttpxTransport:
        self.requests: list[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
        self.addAsyncCleanup(client.aclose)
        return HttpxTransport("http://api.test/", client=client, token_provider=token_provider)

    async def test_post_sends_json_body(self) -> None:
        transport = self.make_transport(lambda request: httpx.Response(200, json={"access": "a", "refresh": "r"}))

        result = await transport.post("/login/", {"email": "a@x.com", "password": "p"})

        self.assertEqual(result, {"access": "a", "refresh": "r"})
        request = self.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(str(request.url), "http://api.test/login/")
        self.assertEqual(json.loads(request.content), {"email": "a@x.com", "password": "p"})
        self.assertNotIn("Authorization", request.headers)

    async def test_attaches_bearer_token(self) -> None:
        async def provider() -> str:
            return "access-123"

        transport = self.make_transport(lambda request: httpx.Response(200, json={"id": 1}), provider)

        await transport.get("/users/me/")

        self.assertEqual(self.requests[0].headers["Authorization"], "Bearer access-123")

    async def test_missing_session_raises_before_sending(self) -> None:
        async def provider() -> None:
            return None

        transport = self.make_transport(lambda request: httpx.Response(200, json={}), provider)

        with self.assertRaises(NotAuthenticatedError):
            await transport.get("/users/me/")
        self.assertEqual(self.requests, [])

    async def test_non_2xx_raises_transport_error(self) -> None:
        transport = self.make_transport(
            lambda request: httpx.Response(401, json={"detail": "invalid credentials"})
        )

        with self.assertRaises(TransportError) as ctx:
            await transport.post("/login/", {"email": "a@x.com", "password": "bad"})

        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(ctx.exception.detail, {"detail": "invalid credentials"})
        self.assertIn("status: 401", str(ctx.exception))

    async def test_network_failure_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = self.make_transport(handler)

        with self.assertRaises(TransportError) as ctx:
            await transport.get("/brands/")
        self.assertIsNone(ctx.exception.status_code)

    async def test_non_json_body_raises_validation_error(self) -> None:
        transport = self.make_transport(lambda request: httpx.Response(200, text="<html>oops</html>"))

        with self.assertRaises(ResponseValidationError):
            await transport.get("/brands/")

    async def test_empty_body_returns_none(self) -> None:
        transport = self.make_transport(lambda request: httpx.Response(204))

        self.assertIsNone(await transport.patch("/brands/1/", {"name": "x"}))
