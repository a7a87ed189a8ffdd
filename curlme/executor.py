"""curlme executor - replay a captured request against another server."""

import time
from urllib.parse import urljoin

import requests

from curlme.models import RequestRecord

REPLAY_HEADER = "x-replayed-by"

# Recomputed by requests for the new target
_HOP_HEADERS = {"host", "content-length", "connection", "transfer-encoding"}


class ReplayResult:
    """Outcome of a replay."""

    def __init__(self):
        self.status_code: int = 0
        self.elapsed_ms: float = 0
        self.error: str | None = None
        self.url: str = ""


def replay_url(record: RequestRecord, target: str) -> str:
    return urljoin(target, record.display_path)


def replay_request(record: RequestRecord, target: str, timeout_ms: int = 15000) -> ReplayResult:
    """Send record's method, headers and body to target.

    - Any HTTP status counts as a response
    - Captures timing
    - Never raises; transport failures set the error field
    """
    result = ReplayResult()
    result.url = replay_url(record, target)

    headers = {k: v for k, v in (record.headers or {}).items() if k.lower() not in _HOP_HEADERS}
    headers[REPLAY_HEADER] = "curlme"
    timeout = timeout_ms / 1000

    try:
        start = time.monotonic()
        resp = requests.request(
            method=record.method.upper(),
            url=result.url,
            headers=headers,
            data=record.body.encode("utf-8") if record.body else None,
            timeout=timeout,
            allow_redirects=True,
        )
        result.elapsed_ms = (time.monotonic() - start) * 1000
        result.status_code = resp.status_code
    except requests.exceptions.Timeout:
        result.error = f"Request timed out after {timeout_ms}ms"
    except requests.exceptions.ConnectionError as e:
        result.error = f"Connection error: {e}"
    except requests.exceptions.RequestException as e:
        result.error = f"Request failed: {e}"

    return result
