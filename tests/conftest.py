"""Shared fixtures for curlme scenario tests."""

import os

import pytest
from click.testing import CliRunner

from curlme import core
from curlme.errors import AuthRequiredError, NotFoundError
from curlme.models import Bin, RequestRecord


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def global_curlme_dir(tmp_path, monkeypatch):
    """Override the global ~/.curlme directory to a temp location."""
    fake_global = tmp_path / "fake_home" / ".curlme"
    fake_global.mkdir(parents=True)
    monkeypatch.setattr(core, "GLOBAL_DIR", fake_global)
    monkeypatch.setattr(core, "GLOBAL_CONFIG", fake_global / "config.yaml")
    monkeypatch.delenv(core.BASE_URL_ENV, raising=False)
    return fake_global


@pytest.fixture
def tmp_project(tmp_path):
    """Create a temporary project directory and cd into it."""
    project = tmp_path / "project"
    project.mkdir()
    original = os.getcwd()
    os.chdir(project)
    yield project
    os.chdir(original)


@pytest.fixture
def fake_api(monkeypatch):
    """In-memory backend patched in place of the HTTP client."""
    from curlme import cli

    api = FakeAPI()
    monkeypatch.setattr(cli, "CurlmeAPI", lambda *args, **kwargs: api)
    return api


class FakeAPI:
    """Stands in for CurlmeAPI. Requests are stored oldest first."""

    def __init__(self):
        self.bins: dict[str, Bin] = {}
        self.requests: dict[str, list[RequestRecord]] = {}
        self.user: dict | None = None
        self.deleted: list[str] = []
        self.fetches: list[tuple[str, int | None]] = []

    def add_bin(self, public_id, name="", records=()):
        self.bins[public_id] = Bin(id=f"id-{public_id}", public_id=public_id, name=name)
        self.requests[public_id] = list(records)
        return self.bins[public_id]

    def create_bin(self, name):
        return self.add_bin(f"b{len(self.bins) + 1:05d}", name=name)

    def get_bin(self, id_or_prefix):
        for b in self.bins.values():
            if b.public_id == id_or_prefix or b.public_id.startswith(id_or_prefix):
                return b
        raise NotFoundError(f"Bin '{id_or_prefix}' not found.")

    def get_bins(self):
        return list(self.bins.values())

    def delete_bin(self, bin_id):
        self.deleted.append(bin_id)
        for public_id, b in list(self.bins.items()):
            if b.id == bin_id:
                del self.bins[public_id]

    def get_requests(self, bin_id, since=None):
        self.fetches.append((bin_id, since))
        records = self.requests.get(bin_id, [])
        if since is not None:
            records = [r for r in records if r.timestamp >= since]
        # The backend's own order is newest first
        return list(reversed(records))

    def get_export(self, bin_id, fmt="json"):
        if fmt == "curl":
            return "\n".join(f"curl -X {r.method} {r.display_path}" for r in self.requests[bin_id])
        return {"requests": [r.to_dict() for r in self.requests[bin_id]]}

    def whoami(self):
        if self.user is None:
            raise AuthRequiredError()
        return self.user


def make_record(
    id="req_0000000001",
    method="GET",
    path="/",
    timestamp=100,
    size=0,
    headers=None,
    body=None,
    **kwargs,
):
    """Factory for RequestRecord objects."""
    return RequestRecord(
        id=id,
        method=method,
        path=path,
        timestamp=timestamp,
        size=size,
        headers=headers if headers is not None else {},
        body=body,
        **kwargs,
    )
