from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx

from .config import DEFAULT_API_URL, DEFAULT_TIMEOUT_S
from .errors import ConnectivityError, ReltrackError, ReltrackHTTPError

DEFAULT_HEADERS = {
    "Accept": "application/vnd.github+json",
    "X-GitHub-Api-Version": "2022-11-28",
}


def _origin(url: str) -> str | None:
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return urlunsplit((parts.scheme, parts.netloc, "", "", "")).rstrip("/")


class ReltrackClient:
    """
    Thin httpx wrapper around the release-hosting REST API.

    The token is fixed at construction time and only sent to the API origin,
    so asset downloads redirected to a CDN never carry it.
    """

    def __init__(
        self,
        *,
        api_url: str = DEFAULT_API_URL,
        token: str | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        default_headers: dict[str, str] | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout_s = timeout_s
        self._default_headers = dict(DEFAULT_HEADERS)
        self._default_headers.update(default_headers or {})

        self._http = httpx.Client(timeout=timeout_s, follow_redirects=True)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "ReltrackClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.api_url}{path}"

    def _auth_for_url(self, url: str) -> bool:
        if not self.token:
            return False
        url_origin = _origin(url)
        return bool(url_origin and url_origin == _origin(self.api_url))

    def request(
        self,
        *,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        auth: bool = True,
    ) -> httpx.Response:
        url = self._url(path)

        req_headers = dict(self._default_headers)
        if headers:
            req_headers.update(headers)
        if auth and self._auth_for_url(url):
            req_headers["Authorization"] = f"Bearer {self.token}"

        try:
            resp = self._http.request(method.upper(), url, params=params, headers=req_headers)
        except httpx.HTTPError as e:
            raise ReltrackError(f"Request failed: {e}") from e

        if resp.status_code >= 400:
            raise ReltrackHTTPError(resp.status_code, resp.text)
        return resp

    def check_access(self) -> None:
        """Raise ConnectivityError unless the API root answers 200."""
        try:
            resp = self.request(method="GET", path="/")
        except ReltrackHTTPError as e:
            if e.status_code == 403:
                raise ConnectivityError(
                    f"Unable to access the GitHub API. Status code: {e.status_code}"
                ) from e
            raise ConnectivityError(f"Unexpected status code: {e.status_code}") from e
        except ReltrackError as e:
            raise ConnectivityError(f"Cannot reach {self.api_url}: {e}") from e
        if resp.status_code != 200:
            raise ConnectivityError(f"Unexpected status code: {resp.status_code}")

    def fetch_text(self, url: str) -> str:
        return self.request(method="GET", path=url, auth=False).text

    def download(self, url: str) -> bytes:
        resp = self.request(
            method="GET",
            path=url,
            headers={"Accept": "application/octet-stream"},
        )
        return resp.content
