"""curlme api - thin client for the request-capture backend."""

import logging
from typing import Any

import requests

from curlme.errors import ApiError, AuthRequiredError, NotFoundError
from curlme.models import Bin, RequestRecord

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15


class CurlmeAPI:
    """HTTP calls to the backend. Errors are mapped to curlme error types.

    401/403 -> AuthRequiredError, 404 -> NotFoundError, anything else that
    fails (status >= 400 or transport) -> ApiError.
    """

    def __init__(self, base_url: str, api_key: str | None = None, timeout: int = DEFAULT_TIMEOUT, session=None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    # ── Bins ─────────────────────────────────────────────────────────────

    def create_bin(self, name: str) -> Bin:
        return Bin.from_dict(self._request("POST", "/api/bins", json={"name": name}))

    def get_bin(self, id_or_prefix: str) -> Bin:
        return Bin.from_dict(self._request("GET", f"/api/bins/{id_or_prefix}"))

    def get_bins(self) -> list[Bin]:
        data = self._request("GET", "/api/bins")
        return [Bin.from_dict(b) for b in _unwrap(data, "bins")]

    def delete_bin(self, bin_id: str) -> None:
        self._request("DELETE", f"/api/bins/{bin_id}")

    # ── Requests ─────────────────────────────────────────────────────────

    def get_requests(self, bin_id: str, since: int | None = None) -> list[RequestRecord]:
        params = {"since": since} if since is not None else None
        data = self._request("GET", f"/api/bins/{bin_id}/requests", params=params)
        return [RequestRecord.from_dict(r) for r in _unwrap(data, "requests")]

    def get_export(self, bin_id: str, fmt: str = "json") -> Any:
        return self._request("GET", f"/api/bins/{bin_id}/export", params={"format": fmt})

    # ── Account ──────────────────────────────────────────────────────────

    def whoami(self) -> dict:
        return self._request("GET", "/api/auth/whoami") or {}

    # ── Transport ────────────────────────────────────────────────────────

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = self.base_url + path
        logger.debug("%s %s %s", method, url, kwargs.get("params") or "")
        try:
            resp = self.session.request(
                method,
                url,
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.Timeout as e:
            raise ApiError(f"Request timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise ApiError(f"Connection error: {e}") from e

        if resp.status_code in (401, 403):
            raise AuthRequiredError(_error_message(resp) or "Authentication required.")
        if resp.status_code == 404:
            raise NotFoundError(_error_message(resp) or f"Not found: {path}")
        if resp.status_code >= 400:
            raise ApiError(
                f"{method} {path} failed with {resp.status_code}: {_error_message(resp)}",
                status_code=resp.status_code,
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return resp.text


def _unwrap(data: Any, key: str) -> list:
    """List endpoints return either a bare array or {key: [...]}."""
    if isinstance(data, dict):
        data = data.get(key)
    return data or []


def _error_message(resp) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text.strip()
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or "")
    return ""
