"""curlme diff - structured comparison of two captured requests."""

from dataclasses import dataclass, field
from typing import Any

from curlme.models import RequestRecord, human_size

MAX_HEADER_CHANGES = 8


@dataclass(frozen=True)
class Change:
    """One difference. kind is method, path, size, or header_added/removed/changed."""

    kind: str
    name: str = ""
    before: Any = None
    after: Any = None


@dataclass
class RequestDiff:
    changes: list[Change] = field(default_factory=list)
    identical: bool = False


def diff_requests(left: RequestRecord, right: RequestRecord) -> RequestDiff:
    """Compare left against right.

    The size entry compares rendered sizes (1.0KB == 1.0KB even when the
    byte counts differ). The identical flag compares raw sizes and also
    requires that no header entry was emitted.
    """
    changes: list[Change] = []

    if left.method != right.method:
        changes.append(Change("method", before=left.method, after=right.method))
    if left.display_path != right.display_path:
        changes.append(Change("path", before=left.display_path, after=right.display_path))

    left_size, right_size = human_size(left.size), human_size(right.size)
    if left_size != right_size:
        changes.append(Change("size", before=left_size, after=right_size))

    changes.extend(_diff_headers(left.headers or {}, right.headers or {}))

    identical = (
        not changes
        and left.method == right.method
        and left.display_path == right.display_path
        and left.size == right.size
        and left.body == right.body
    )
    return RequestDiff(changes=changes, identical=identical)


def _diff_headers(old: dict, new: dict) -> list[Change]:
    changes: list[Change] = []
    for key in dict.fromkeys([*old, *new]):
        if key not in old:
            changes.append(Change("header_added", key, after=new[key]))
        elif key not in new:
            changes.append(Change("header_removed", key, before=old[key]))
        elif old[key] != new[key]:
            changes.append(Change("header_changed", key, before=old[key], after=new[key]))
        else:
            continue
        if len(changes) >= MAX_HEADER_CHANGES:
            break
    return changes
