"""curlme CLI - terminal-first HTTP request debugging."""

import contextlib
import difflib
import functools
import json
import logging
import os
import sys
import uuid
from dataclasses import asdict, dataclass, field

import click

from curlme import core
from curlme.api import CurlmeAPI
from curlme.context import (
    clear_active_bin,
    get_active_bin,
    get_recent_bins,
    match_bin,
    push_recent_bin,
    resolve_active_bin,
    set_active_bin,
)
from curlme.diff import diff_requests
from curlme.errors import CurlmeError, StaleContextError
from curlme.executor import replay_request
from curlme.models import newest_first
from curlme.output import (
    ROW_HEADER,
    format_bin_header,
    format_body,
    format_choice,
    format_detail,
    format_diff,
    format_headers,
    format_meta,
    format_row,
)
from curlme.refs import index_of, resolve_ref, short_request_id
from curlme.tail import LiveTailer, TailEvent

VERSION = "1.1.0"
BIN_PICKER_LIMIT = 20

TOOL_HELP = """\
curlme — Terminal-first HTTP request debugging.

Capture requests in a bin, then inspect, replay and diff them.

\b
CORE
────
  init [NAME]            Create a bin and make it active (alias: new)
  bin [SELECTOR]         Show or set the active bin (alias: use)
  bin clear              Clear the active bin for this workspace
  bin delete SELECTOR    Delete a bin
  listen [--since 5m]    Stream incoming requests (alias: l)
  latest                 Show the latest request
  show [REF]             Show request details (alias: s)
  replay [REF] --to URL  Replay a request (alias: r)
  diff [A] [B]           Diff two requests, default 1 vs 2 (alias: d)
  open [REF]             Open the dashboard for the bin or a request
  export                 Export request history

\b
ACCOUNT
───────
  login / logout         Store or remove the API key
  status                 Auth, active context and endpoint
  upgrade                Billing and plan

\b
REFS
────
  1, 2, ...              Position in the bin, 1 = newest
  req_ab12cd             Short ID as shown in listings
  <id prefix>            Any unambiguous prefix of the full ID
  (omitted)              Interactive picker when running in a terminal

\b
CONTEXT
───────
  The active bin is remembered per workspace (nearest git root, or the
  current directory). --global reads and writes a single global slot.
  CURLME_API_URL overrides the stored base URL.
"""

COMMAND_ALIASES = {
    "new": "init",
    "use": "bin",
    "l": "listen",
    "s": "show",
    "r": "replay",
    "d": "diff",
}

EMPTY_BIN_HINT = "No requests yet in active bin '{}'. Send one, then run: curlme listen"


class AliasedGroup(click.Group):
    """Group that resolves short aliases and suggests close matches."""

    def get_command(self, ctx, cmd_name):
        return super().get_command(ctx, COMMAND_ALIASES.get(cmd_name, cmd_name))

    def resolve_command(self, ctx, args):
        cmd_name = args[0] if args else None
        if cmd_name and not cmd_name.startswith("-") and self.get_command(ctx, cmd_name) is None:
            if cmd_name in ("request", "requests"):
                _fail(CurlmeError(f"Unknown command '{cmd_name}'. Did you mean: show, latest, or listen?"))
            known = self.list_commands(ctx) + list(COMMAND_ALIASES)
            suggestions = difflib.get_close_matches(cmd_name, known, n=3, cutoff=0.0)
            _fail(CurlmeError(f"Unknown command '{cmd_name}'. Did you mean: {', '.join(suggestions)}?"))
        return super().resolve_command(ctx, args)


@dataclass
class AppContext:
    """Everything one invocation needs, built once in main()."""

    config: dict
    env: dict
    bin_override: str | None = None
    global_: bool = False
    as_json: bool = False
    _api: CurlmeAPI | None = field(default=None, repr=False)

    @property
    def base_url(self) -> str:
        return core.resolve_base_url(self.config, self.env)

    @property
    def api(self) -> CurlmeAPI:
        if self._api is None:
            self._api = CurlmeAPI(self.base_url, api_key=self.config.get("api_key"))
        return self._api

    def save(self) -> None:
        core.save_config(self.config)


def _reports_errors(fn):
    """Turn CurlmeError into an ERROR line on stderr and exit status 1."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except CurlmeError as e:
            _fail(e)

    return wrapper


@click.group(
    cls=AliasedGroup,
    invoke_without_command=True,
    help=TOOL_HELP,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.version_option(VERSION, "-v", "--version", prog_name="curlme")
@click.option("--bin", "bin_override", default=None, metavar="ID", help="Explicit bin (advanced mode).")
@click.option("--global", "global_", is_flag=True, default=False, help="Use global context instead of workspace context.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Machine-readable output.")
@click.option("--debug", is_flag=True, default=False, help="Log API calls and suppressed errors to stderr.")
@click.pass_context
@_reports_errors
def main(ctx, bin_override, global_, as_json, debug):
    """Terminal-first HTTP request debugging."""
    if debug:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    ctx.obj = AppContext(
        config=core.load_config(),
        env=core.load_env(),
        bin_override=bin_override,
        global_=global_,
        as_json=as_json,
    )

    if ctx.invoked_subcommand is None:
        _cmd_overview(ctx, ctx.obj)


# ── Bins ─────────────────────────────────────────────────────────────────


@main.command("init")
@click.argument("name", required=False)
@click.pass_obj
@_reports_errors
def init_cmd(app, name):
    """Create a bin and set it active (alias: new)."""
    created = app.api.create_bin(name or f"bin-{uuid.uuid4().hex[:6]}")
    _remember_bin(app, created.public_id)

    if created.is_temporary is not None:
        kind = "temporary bin" if created.is_temporary else "bin"
    else:
        kind = "bin" if app.config.get("api_key") else "temporary bin"

    click.echo(f"Created {kind}: {created.public_id}")
    click.echo(f"Endpoint: {core.endpoint_for(app.base_url, created.public_id)}")
    click.echo("Active bin set for this workspace." if not app.global_ else "Active bin set globally.")
    click.echo("\nNext: curlme listen")


@main.command("bin")
@click.argument("args", nargs=-1)
@click.pass_obj
@_reports_errors
def bin_cmd(app, args):
    """Show or set the active bin (alias: use).

    \b
    curlme bin                 list bins, pick one in a terminal
    curlme bin SELECTOR        set active bin by id, id prefix or name
    curlme bin set SELECTOR    same as above
    curlme bin clear           clear the active bin for this scope
    curlme bin delete SELECTOR delete a bin
    """
    if not args:
        _cmd_bin_list(app)
    elif args == ("clear",):
        clear_active_bin(app.config, app.global_)
        app.save()
        click.echo("Active bin cleared.")
    elif len(args) == 2 and args[0] == "set":
        _cmd_bin_set(app, args[1])
    elif len(args) == 2 and args[0] == "delete":
        _cmd_bin_delete(app, args[1])
    elif len(args) == 1:
        _cmd_bin_set(app, args[0])
    else:
        raise click.UsageError("Usage: curlme bin [clear | set SELECTOR | delete SELECTOR | SELECTOR]")


# ── Requests ─────────────────────────────────────────────────────────────


@main.command("listen")
@click.option("--since", default=None, metavar="DURATION", help="Show backlog before streaming (e.g. 5m, 30s).")
@click.option("--to", "target", default=None, metavar="URL", help="Target URL for the 'r' (replay latest) key.")
@click.pass_obj
@_reports_errors
def listen_cmd(app, since, target):
    """Stream incoming requests (alias: l)."""
    bin_id = _active_bin(app)
    tailer = LiveTailer(lambda ts: app.api.get_requests(bin_id, ts), since=since)

    click.echo(format_bin_header(bin_id, core.endpoint_for(app.base_url, bin_id), "listening"))
    click.echo(ROW_HEADER)

    with _keypresses() as read_key:
        if read_key:
            keys = "d diff latest vs previous, q quit"
            if target:
                keys = "r replay latest, " + keys
            click.echo(f"Keys: {keys}", err=True)
        for event, payload in tailer.events(read_key):
            if event is TailEvent.TICK:
                for index, record in payload:
                    click.echo(format_row(index, record))
            elif event is TailEvent.KEY:
                if not _on_listen_key(payload, tailer.state, target):
                    break
            else:
                break


@main.command("latest")
@click.option("--summary", is_flag=True, default=False, help="One-line summary.")
@click.pass_obj
@_reports_errors
def latest_cmd(app, summary):
    """Show the latest request (same as show 1)."""
    bin_id = _active_bin(app)
    reqs = _snapshot(app, bin_id)
    if not reqs:
        click.echo(EMPTY_BIN_HINT.format(bin_id))
        return

    if app.as_json:
        click.echo(json.dumps(reqs[0].to_dict(), indent=2))
        return

    click.echo(_header(app, bin_id, f"{len(reqs)} requests"))
    if summary:
        click.echo(ROW_HEADER)
        click.echo(format_row(1, reqs[0]))
        return
    click.echo(format_detail(reqs[0], "1"))


@main.command("show")
@click.argument("ref", required=False)
@click.option("--headers", "only_headers", is_flag=True, default=False, help="Show headers only.")
@click.option("--body", "only_body", is_flag=True, default=False, help="Show body only.")
@click.option("--meta", "only_meta", is_flag=True, default=False, help="Show metadata only.")
@click.pass_obj
@_reports_errors
def show_cmd(app, ref, only_headers, only_body, only_meta):
    """Show request details (alias: s)."""
    bin_id = _active_bin(app)
    reqs = _snapshot(app, bin_id)
    if not reqs:
        click.echo(EMPTY_BIN_HINT.format(bin_id))
        return

    selected = _resolve(ref, reqs, "Select request", "curlme show 1")
    index = index_of(selected, reqs)

    if app.as_json:
        click.echo(json.dumps(selected.to_dict(), indent=2))
        return

    click.echo(_header(app, bin_id, f"{len(reqs)} requests"))
    if only_headers:
        click.echo("Headers")
        click.echo("\n".join(format_headers(selected)))
    elif only_body:
        click.echo(format_body(selected))
    elif only_meta:
        click.echo("\n".join(format_meta(selected, index)))
    else:
        click.echo(format_detail(selected, str(index)))


@main.command("replay")
@click.argument("ref", required=False)
@click.option("--to", "target", required=True, metavar="URL", help="Target URL.")
@click.option("--timeout", type=int, default=15000, show_default=True, help="Request timeout in ms.")
@click.pass_obj
@_reports_errors
def replay_cmd(app, ref, target, timeout):
    """Replay a captured request to a target URL (alias: r)."""
    bin_id = _active_bin(app)
    reqs = _snapshot(app, bin_id)
    if not reqs:
        click.echo(EMPTY_BIN_HINT.format(bin_id))
        return

    selected = _resolve(ref, reqs, "Pick request to replay", f"curlme replay 1 --to {target}")
    _replay_and_report(selected, target, timeout)


@main.command("diff")
@click.argument("a", required=False)
@click.argument("b", required=False)
@click.pass_obj
@_reports_errors
def diff_cmd(app, a, b):
    """Diff two requests (default: 1 vs 2) (alias: d)."""
    bin_id = _active_bin(app)
    reqs = _snapshot(app, bin_id)
    if len(reqs) < 2:
        click.echo("Need at least 2 requests to diff. Next: curlme listen")
        return

    left = resolve_ref(a or "1", reqs)
    right = resolve_ref(b or "2", reqs)
    result = diff_requests(left, right)

    if app.as_json:
        click.echo(
            json.dumps(
                {
                    "left": left.id,
                    "right": right.id,
                    "identical": result.identical,
                    "changes": [asdict(c) for c in result.changes],
                },
                indent=2,
            ),
        )
        return
    click.echo(format_diff(result, str(index_of(left, reqs)), str(index_of(right, reqs))))


@main.command("open")
@click.argument("ref", required=False)
@click.pass_obj
@_reports_errors
def open_cmd(app, ref):
    """Open the dashboard for the active bin or one request."""
    bin_id = _active_bin(app)
    request_id = None
    if ref:
        request_id = resolve_ref(ref, _snapshot(app, bin_id)).id
    _open_url(core.dashboard_for(app.base_url, bin_id, request_id))


@main.command("export")
@click.option("--format", "fmt", type=click.Choice(["json", "curl"]), default="json", show_default=True)
@click.pass_obj
@_reports_errors
def export_cmd(app, fmt):
    """Export request history."""
    bin_id = _active_bin(app)
    payload = app.api.get_export(bin_id, fmt)
    if isinstance(payload, str):
        click.echo(payload)
    elif app.as_json:
        click.echo(json.dumps(payload))
    else:
        click.echo(json.dumps(payload, indent=2))


# ── Account ──────────────────────────────────────────────────────────────


@main.command("login")
@click.pass_obj
@_reports_errors
def login_cmd(app):
    """Authenticate with an API key."""
    key = click.prompt("Enter API key", hide_input=True, default="", show_default=False).strip()
    if not key:
        click.echo("ERROR: No API key provided.", err=True)
        sys.exit(1)

    app.config["api_key"] = key
    app._api = None
    try:
        user = app.api.whoami()
    except CurlmeError as e:
        app.config.pop("api_key", None)
        app.save()
        click.echo(f"ERROR: Authentication failed: {e}", err=True)
        sys.exit(1)

    app.save()
    click.echo(f"Authenticated as {user.get('email') or user.get('name') or 'user'}")


@main.command("logout")
@click.pass_obj
def logout_cmd(app):
    """Remove the stored API key."""
    app.config.pop("api_key", None)
    app.save()
    click.echo("Logged out.")


@main.command("status")
@click.pass_obj
def status_cmd(app):
    """Show auth and active context."""
    active = get_active_bin(app.config, app.global_)
    click.echo(f"Base URL: {app.base_url}")
    click.echo(f"Auth: {'configured' if app.config.get('api_key') else 'missing'}")
    click.echo(f"Active bin: {active or '-'}")
    if active:
        click.echo(f"Endpoint: {core.endpoint_for(app.base_url, active)}")

    try:
        user = app.api.whoami()
    except CurlmeError:
        click.echo("User: not authenticated")
        return
    click.echo(f"User: {user.get('email') or user.get('name') or 'unknown'}")
    click.echo(f"Plan: {user.get('plan') or 'FREE'}")


@main.command("upgrade")
@click.pass_obj
def upgrade_cmd(app):
    """Open billing and plan."""
    _open_url(f"{app.base_url}/pricing")


# ── Subcommand implementations ──────────────────────────────────────────


def _cmd_overview(ctx, app):
    active = get_active_bin(app.config, app.global_)
    if active:
        click.echo(format_bin_header(active, core.endpoint_for(app.base_url, active)))
        click.echo("Next: curlme listen")
        click.echo("Then: curlme latest")
        click.echo("Then: curlme show 1")
        return
    click.echo(ctx.get_help())
    click.echo("No active bin found. Run: curlme init")


def _cmd_bin_list(app):
    bins = app.api.get_bins()
    active = get_active_bin(app.config, app.global_)

    if not bins:
        click.echo("No bins found. Run: curlme init")
        return

    if app.as_json:
        click.echo(json.dumps([asdict(b) for b in bins], indent=2))
        return

    endpoint = core.endpoint_for(app.base_url, active) if active else "-"
    click.echo(format_bin_header(active or "-", endpoint, f"{len(bins)} bins"))
    click.echo(f"Active: {active or '-'}")
    recent = get_recent_bins(app.config, app.global_)
    if recent:
        click.echo(f"Recent: {', '.join(recent)}")

    if not _is_tty():
        return

    top = bins[:BIN_PICKER_LIMIT]
    for i, b in enumerate(top, 1):
        marker = " (active)" if b.public_id == active else ""
        click.echo(f"{i}. {b.public_id}{marker}  {b.name}")
    try:
        choice = click.prompt("Select active bin", type=click.IntRange(1, len(top)))
    except click.Abort:
        return
    picked = top[choice - 1]
    _remember_bin(app, picked.public_id)
    click.echo(f"Active bin: {picked.public_id}")


def _cmd_bin_set(app, selector):
    found = match_bin(selector, app.api.get_bins())
    _remember_bin(app, found.public_id)
    click.echo(f"Active bin: {found.public_id}")
    click.echo(f"Endpoint: {core.endpoint_for(app.base_url, found.public_id)}")


def _cmd_bin_delete(app, selector):
    found = match_bin(selector, app.api.get_bins())
    app.api.delete_bin(found.id)
    if get_active_bin(app.config, app.global_) == found.public_id:
        clear_active_bin(app.config, app.global_)
        app.save()
    click.echo(f"Deleted bin: {found.public_id}")


def _on_listen_key(key, state, target):
    """Handle one keypress during listen. Returns False to stop."""
    key = key.lower()
    if key == "q":
        return False
    if key == "d":
        if state.previous is None:
            click.echo("Need at least 2 requests to diff.", err=True)
        else:
            result = diff_requests(state.latest, state.previous)
            click.echo(
                format_diff(result, short_request_id(state.latest.id), short_request_id(state.previous.id)),
            )
    elif key == "r":
        if not target:
            click.echo("Start listen with --to URL to replay.", err=True)
        elif state.latest is None:
            click.echo("Nothing to replay yet.", err=True)
        else:
            _replay_and_report(state.latest, target, 15000, exit_on_error=False)
    return True


def _replay_and_report(record, target, timeout, exit_on_error=True):
    result = replay_request(record, target, timeout)
    if result.error:
        click.echo(f"ERROR: {result.error}", err=True)
        if exit_on_error:
            sys.exit(1)
        return
    click.echo(f"Replayed request {short_request_id(record.id)} to {target}")
    click.echo(f"Response: {result.status_code} in {int(result.elapsed_ms)}ms")


# ── Helpers ──────────────────────────────────────────────────────────────


def _fail(error):
    click.echo(f"ERROR: {error.message}", err=True)
    if error.hint:
        click.echo(error.hint, err=True)
    sys.exit(1)


def _active_bin(app):
    """Resolve the bin for this command and persist the outcome."""
    try:
        found = resolve_active_bin(app.api, app.config, app.bin_override, app.global_)
    except StaleContextError as e:
        if e.cleared:
            app.save()
        raise
    app.save()
    return found.public_id


def _remember_bin(app, bin_id):
    set_active_bin(app.config, bin_id, app.global_)
    push_recent_bin(app.config, bin_id, app.global_)
    app.save()


def _snapshot(app, bin_id):
    return newest_first(app.api.get_requests(bin_id))


def _header(app, bin_id, right):
    return format_bin_header(bin_id, core.endpoint_for(app.base_url, bin_id), right)


def _resolve(ref, reqs, title, example):
    return resolve_ref(
        ref,
        reqs,
        interactive=_is_tty(),
        picker=functools.partial(_pick_request, title=title),
        example=example,
    )


def _pick_request(records, title="Select request"):
    """Numbered prompt over records. None when the user cancels."""
    if not records:
        return None
    for i, r in enumerate(records, 1):
        click.echo(format_choice(i, r))
    try:
        choice = click.prompt(title, type=click.IntRange(1, len(records)), default=1)
    except click.Abort:
        return None
    return records[choice - 1]


def _is_tty():
    return sys.stdin.isatty() and sys.stdout.isatty()


def _open_url(url):
    click.echo(f"Opening {url}")
    if click.launch(url) != 0:
        click.echo("ERROR: Failed to open browser.", err=True)
        click.echo(url)


@contextlib.contextmanager
def _keypresses():
    """Yield read_key(timeout) -> char | None, or None when keys can't be read.

    Keys are read only from a POSIX terminal, switched to cbreak mode for
    the duration and restored afterwards.
    """
    if sys.platform == "win32" or not _is_tty():
        yield None
        return

    import select
    import termios
    import tty

    fd = sys.stdin.fileno()
    saved = termios.tcgetattr(fd)

    def read_key(timeout):
        ready, _, _ = select.select([fd], [], [], timeout)
        if not ready:
            return None
        return os.read(fd, 1).decode(errors="ignore")

    try:
        tty.setcbreak(fd)
        yield read_key
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


if __name__ == "__main__":
    main()
