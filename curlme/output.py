"""curlme output - plain-text rendering of bins, requests and diffs."""

from __future__ import annotations

import json
from datetime import datetime, timezone

from curlme.diff import RequestDiff
from curlme.models import RequestRecord, human_size
from curlme.refs import short_request_id

ROW_HEADER = "#   TIME      METHOD  PATH                          SIZE     ID"

_DIFF_LABELS = {
    "method": "Method",
    "path": "Path",
    "size": "Body size",
}


def to_clock(ts: int) -> str:
    return datetime.fromtimestamp(ts / 1000).strftime("%H:%M:%S")


def to_iso(ts: int) -> str:
    dt = datetime.fromtimestamp(ts / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_bin_header(bin_id: str, endpoint: str, right: str = "ready") -> str:
    return f"BIN {bin_id}  |  endpoint {endpoint}  |  {right}"


def format_row(index: int, req: RequestRecord) -> str:
    return "  ".join(
        [
            str(index).ljust(2),
            to_clock(req.timestamp).ljust(8),
            req.method.ljust(6),
            req.display_path[:28].ljust(28),
            human_size(req.size).rjust(7),
            short_request_id(req.id),
        ],
    )


def format_choice(index: int, req: RequestRecord) -> str:
    return (
        f"{index}. {to_clock(req.timestamp)}  {req.method.ljust(6)} "
        f"{req.display_path[:32]}  {short_request_id(req.id)}"
    )


def format_headers(req: RequestRecord) -> list[str]:
    if not req.headers:
        return ["- (none)"]
    return [f"- {k}: {v}" for k, v in req.headers.items()]


def format_body(req: RequestRecord) -> str:
    if not req.body:
        return "(empty)"
    try:
        return json.dumps(json.loads(req.body), indent=2)
    except (json.JSONDecodeError, ValueError):
        return req.body


def format_meta(req: RequestRecord, index: int | None = None) -> list[str]:
    lines = []
    if index is not None:
        lines.append(f"Request: {index}")
    lines += [
        f"ID: {req.id}",
        f"Time: {to_iso(req.timestamp)}",
        f"Method: {req.method}",
        f"Path: {req.display_path}",
        f"IP: {req.ip or '-'}",
        f"Size: {human_size(req.size)}",
    ]
    return lines


def format_detail(req: RequestRecord, index_label: str | None = None) -> str:
    short = short_request_id(req.id)
    label = f"{index_label}  ({short})" if index_label else short
    lines = [
        f"Request {label}",
        f"Time: {to_iso(req.timestamp)}",
        f"Method: {req.method}",
        f"Path: {req.display_path}",
    ]
    if req.query:
        lines.append("Query: " + "&".join(f"{k}={v}" for k, v in req.query.items()))
    lines += [
        f"IP: {req.ip or '-'}",
        f"Size: {human_size(req.size)}",
        "",
        "Headers",
        *format_headers(req),
        "",
        "Body",
        format_body(req),
    ]
    return "\n".join(lines)


def format_diff(result: RequestDiff, left_label: str, right_label: str) -> str:
    lines = [f"Diff {left_label} vs {right_label}"]
    for change in result.changes:
        if change.kind in _DIFF_LABELS:
            lines.append(f"- {_DIFF_LABELS[change.kind]}: {change.before} -> {change.after}")
        else:
            verb = change.kind.split("_", 1)[1]
            lines.append(f"- Header {verb}: {change.name}")
    if result.identical:
        lines.append("No material differences found.")
    return "\n".join(lines)
