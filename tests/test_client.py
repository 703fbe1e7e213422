import unittest

import httpx

from reltrack.client import ReltrackClient
from reltrack.errors import ConnectivityError, ReltrackError, ReltrackHTTPError


def _client(handler, *, token: str | None = "tok_123") -> ReltrackClient:
    client = ReltrackClient(api_url="https://api.github.com", token=token)
    client._http = httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)  # type: ignore[attr-defined]
    return client


class TestRequestAuth(unittest.TestCase):
    def test_token_sent_to_api_origin(self) -> None:
        seen: list[str | None] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("authorization"))
            return httpx.Response(200, json={})

        client = _client(handler)
        try:
            client.request(method="GET", path="repos/octo/widget/releases/latest")
        finally:
            client.close()

        self.assertEqual(seen, ["Bearer tok_123"])

    def test_token_not_forwarded_cross_origin_redirect(self) -> None:
        seen: list[tuple[str, str | None]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.url.host, request.headers.get("authorization")))
            if request.url.host == "api.github.com":
                return httpx.Response(302, headers={"location": "https://objects.example.com/widget.zip"})
            return httpx.Response(200, content=b"zip-bytes")

        client = _client(handler)
        try:
            data = client.download("https://api.github.com/repos/octo/widget/releases/assets/1")
        finally:
            client.close()

        self.assertEqual(data, b"zip-bytes")
        self.assertEqual(seen[0], ("api.github.com", "Bearer tok_123"))
        self.assertEqual(seen[1], ("objects.example.com", None))

    def test_manifest_fetch_is_unauthenticated(self) -> None:
        seen: list[str | None] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("authorization"))
            return httpx.Response(200, text="octo/widget\n")

        client = _client(handler)
        try:
            text = client.fetch_text("https://gist.example.com/raw/list.txt")
        finally:
            client.close()

        self.assertEqual(text, "octo/widget\n")
        self.assertEqual(seen, [None])

    def test_http_error_raises_with_status(self) -> None:
        client = _client(lambda request: httpx.Response(500, text="boom"))
        try:
            with self.assertRaises(ReltrackHTTPError) as ctx:
                client.request(method="GET", path="/x")
        finally:
            client.close()
        self.assertEqual(ctx.exception.status_code, 500)

    def test_transport_error_is_wrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route", request=request)

        client = _client(handler)
        try:
            with self.assertRaises(ReltrackError):
                client.request(method="GET", path="/x")
        finally:
            client.close()


class TestCheckAccess(unittest.TestCase):
    def test_ok(self) -> None:
        client = _client(lambda request: httpx.Response(200, json={}))
        try:
            client.check_access()
        finally:
            client.close()

    def test_forbidden(self) -> None:
        client = _client(lambda request: httpx.Response(403, json={"message": "rate limited"}))
        try:
            with self.assertRaises(ConnectivityError) as ctx:
                client.check_access()
        finally:
            client.close()
        self.assertIn("Unable to access the GitHub API", str(ctx.exception))

    def test_unexpected_status(self) -> None:
        client = _client(lambda request: httpx.Response(204))
        try:
            with self.assertRaises(ConnectivityError) as ctx:
                client.check_access()
        finally:
            client.close()
        self.assertIn("Unexpected status code: 204", str(ctx.exception))

    def test_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        client = _client(handler)
        try:
            with self.assertRaises(ConnectivityError):
                client.check_access()
        finally:
            client.close()
