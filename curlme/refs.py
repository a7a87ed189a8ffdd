"""curlme refs - map a user-typed token to one captured request.

Token grammar:
  (empty)   picker in a terminal, otherwise MissingReferenceError
  1, 2, ... position in the newest-first snapshot (1 = newest)
  other     full id, id prefix, or canonical short id
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence

from curlme.errors import AmbiguousReferenceError, MissingReferenceError, NotFoundError
from curlme.models import RequestRecord

PICKER_LIMIT = 10

_INDEX_RE = re.compile(r"[0-9]+")

Picker = Callable[[Sequence[RequestRecord]], "RequestRecord | None"]


def short_request_id(request_id: str) -> str:
    """Canonical short form: 10 chars for req_-prefixed ids, else req_ + 6 chars."""
    if request_id.startswith("req_"):
        return request_id[:10]
    return f"req_{request_id[:6]}"


def index_of(record: RequestRecord, snapshot: Sequence[RequestRecord]) -> int:
    """1-based position of record in the snapshot, 0 when absent."""
    for i, r in enumerate(snapshot, start=1):
        if r.id == record.id:
            return i
    return 0


def resolve_ref(
    ref: str | None,
    snapshot: Sequence[RequestRecord],
    interactive: bool = False,
    picker: Picker | None = None,
    example: str = "curlme show 1",
) -> RequestRecord:
    """Resolve ref against a newest-first snapshot.

    Raises NotFoundError when nothing matches (including an out-of-range
    index or a cancelled picker), AmbiguousReferenceError when a token
    matches several requests, MissingReferenceError when no ref is given
    outside a terminal.
    """
    if not ref:
        if not interactive or picker is None:
            raise MissingReferenceError(example)
        picked = picker(list(snapshot[:PICKER_LIMIT])) if snapshot else None
        if picked is None:
            raise NotFoundError(
                "No requests in the active bin yet.",
                hint="Next: curlme listen",
            )
        return picked

    if _INDEX_RE.fullmatch(ref):
        index = int(ref)
        if 1 <= index <= len(snapshot):
            return snapshot[index - 1]
        raise NotFoundError(f"Request '{ref}' not found.")

    matches = [
        r
        for r in snapshot
        if r.id == ref or r.id.startswith(ref) or short_request_id(r.id) == ref
    ]
    if not matches:
        raise NotFoundError(f"Request '{ref}' not found.")
    if len(matches) > 1:
        raise AmbiguousReferenceError(ref, len(matches))
    return matches[0]
