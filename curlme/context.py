"""curlme context - which bin a command operates on.

Bin selection is scoped per workspace: the nearest ancestor directory that
holds a version-control marker, or the working directory when there is none.
All functions take the loaded config dict and mutate it in place; callers
persist it with core.save_config.
"""

import logging
import os
from pathlib import Path

from curlme.errors import NoActiveBinError, NotFoundError, StaleContextError

logger = logging.getLogger(__name__)

VCS_MARKERS = (".git",)
MAX_RECENT_BINS = 10


# ── Workspace ────────────────────────────────────────────────────────────


def resolve_workspace_key(start_dir: str | Path | None = None) -> str:
    """Return the nearest ancestor of start_dir containing a VCS marker.

    Falls back to the absolute, normalized start_dir. Symlinks are not
    resolved, so the key matches what the user sees in their shell.
    """
    origin = os.path.abspath(start_dir if start_dir is not None else os.getcwd())
    current = origin
    while True:
        if any(os.path.exists(os.path.join(current, m)) for m in VCS_MARKERS):
            return current
        parent = os.path.dirname(current)
        if parent == current:
            return origin
        current = parent


# ── Active bin ───────────────────────────────────────────────────────────


def get_active_bin(config: dict, global_: bool = False, cwd=None) -> str | None:
    """Workspace entry, then the legacy single slot, then the global slot.

    Only a missing (None) value falls through to the next slot.
    """
    if global_:
        return config.get("global_active_bin_id")
    key = resolve_workspace_key(cwd)
    by_workspace = config.get("active_bins_by_workspace") or {}
    for value in (
        by_workspace.get(key),
        config.get("active_bin_id"),
        config.get("global_active_bin_id"),
    ):
        if value is not None:
            return value
    return None


def set_active_bin(config: dict, bin_id: str, global_: bool = False, cwd=None) -> None:
    if global_:
        config["global_active_bin_id"] = bin_id
        return
    key = resolve_workspace_key(cwd)
    by_workspace = dict(config.get("active_bins_by_workspace") or {})
    by_workspace[key] = bin_id
    config["active_bins_by_workspace"] = by_workspace
    # Older versions only read the single slot
    config["active_bin_id"] = bin_id


def clear_active_bin(config: dict, global_: bool = False, cwd=None) -> None:
    if global_:
        config.pop("global_active_bin_id", None)
        return
    key = resolve_workspace_key(cwd)
    by_workspace = dict(config.get("active_bins_by_workspace") or {})
    by_workspace.pop(key, None)
    config["active_bins_by_workspace"] = by_workspace
    config.pop("active_bin_id", None)


# ── Recent bins ──────────────────────────────────────────────────────────


def get_recent_bins(config: dict, global_: bool = False, cwd=None) -> list[str]:
    """Most-recent-first bins for the workspace.

    The global scope has a single slot, so its view is just that slot.
    """
    if global_:
        active = config.get("global_active_bin_id")
        return [active] if active else []
    key = resolve_workspace_key(cwd)
    by_workspace = config.get("recent_bins_by_workspace") or {}
    return list(by_workspace.get(key) or [])


def push_recent_bin(config: dict, bin_id: str, global_: bool = False, cwd=None) -> None:
    # Recency is tracked per workspace only
    if global_:
        return
    key = resolve_workspace_key(cwd)
    by_workspace = dict(config.get("recent_bins_by_workspace") or {})
    current = by_workspace.get(key) or []
    by_workspace[key] = ([bin_id] + [b for b in current if b != bin_id])[:MAX_RECENT_BINS]
    config["recent_bins_by_workspace"] = by_workspace


# ── Resolution against the backend ───────────────────────────────────────


def resolve_active_bin(api, config: dict, explicit: str | None = None, global_: bool = False, cwd=None):
    """Re-resolve the bin a command should use against the backend.

    An explicit --bin wins over stored context. When a stored id no longer
    exists, the stored context for that scope is cleared before
    StaleContextError is raised. Auth and transport errors propagate and
    leave the context alone.
    """
    candidate = explicit or get_active_bin(config, global_, cwd)
    if not candidate:
        raise NoActiveBinError()

    try:
        found = api.get_bin(candidate)
    except NotFoundError:
        if not explicit:
            logger.warning("Stored bin %s no longer exists; clearing context", candidate)
            clear_active_bin(config, global_, cwd)
        raise StaleContextError(candidate, cleared=not explicit) from None

    set_active_bin(config, found.public_id, global_, cwd)
    push_recent_bin(config, found.public_id, global_, cwd)
    return found


def match_bin(selector: str, bins):
    """First bin whose public id equals or starts with selector, or whose name equals it."""
    for b in bins:
        if b.public_id == selector or b.public_id.startswith(selector) or b.name == selector:
            return b
    raise NotFoundError(f"Bin '{selector}' not found.")
