"""curlme models - backend records as immutable dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Bin:
    """A backend-hosted capture endpoint."""

    id: str
    public_id: str
    name: str = ""
    is_temporary: bool | None = None
    request_count: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Bin:
        public_id = data.get("publicId") or data.get("id") or ""
        return cls(
            id=str(data.get("id") or public_id),
            public_id=str(public_id),
            name=data.get("name") or "",
            is_temporary=data.get("isTemporary"),
            request_count=data.get("requestCount"),
        )


@dataclass(frozen=True)
class RequestRecord:
    """One captured HTTP request. Never mutated after it is read."""

    id: str
    method: str
    path: str
    timestamp: int
    size: int = 0
    headers: dict[str, str] = field(default_factory=dict)
    query: dict[str, str] | None = None
    body: str | None = None
    content_type: str | None = None
    ip: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RequestRecord:
        return cls(
            id=str(data["id"]),
            method=str(data.get("method") or "GET"),
            path=data.get("path") or "",
            timestamp=int(data.get("timestamp") or 0),
            size=int(data.get("size") or 0),
            headers=dict(data.get("headers") or {}),
            query=data.get("query"),
            body=data.get("body"),
            content_type=data.get("contentType"),
            ip=data.get("ip"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "method": self.method,
            "path": self.path,
            "headers": dict(self.headers),
            "query": self.query,
            "body": self.body,
            "contentType": self.content_type,
            "ip": self.ip,
            "timestamp": self.timestamp,
            "size": self.size,
        }

    @property
    def display_path(self) -> str:
        return self.path or "/"


def newest_first(records) -> list[RequestRecord]:
    """Order a fetched batch as a snapshot: newest first, ties keep backend order."""
    return sorted(records, key=lambda r: r.timestamp, reverse=True)


def human_size(size: int) -> str:
    """Render a byte count as B, one-decimal KB, or one-decimal MB."""
    if size < 1024:
        return f"{size}B"
    kb = size / 1024
    if kb < 1024:
        return f"{kb:.1f}KB"
    return f"{kb / 1024:.1f}MB"
