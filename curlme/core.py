"""curlme core - config loading, env merge, base URL resolution."""

import os
from pathlib import Path

import yaml
from dotenv import dotenv_values

from curlme.errors import ConfigError

GLOBAL_DIR = Path.home() / ".curlme"
GLOBAL_CONFIG = GLOBAL_DIR / "config.yaml"

DEFAULT_BASE_URL = "https://curlme.io"
BASE_URL_ENV = "CURLME_API_URL"

CONFIG_DEFAULTS = {
    "base_url": DEFAULT_BASE_URL,
    "api_key": None,
    "active_bin_id": None,
    "global_active_bin_id": None,
    "active_bins_by_workspace": {},
    "recent_bins_by_workspace": {},
}


def load_config(config_path: str | Path | None = None) -> dict:
    """Load the persisted context document. Missing keys get defaults.

    Stores '_config_path' in the returned dict so save_config knows where
    to write it back. Keys starting with '_' are never persisted.
    """
    path = Path(config_path) if config_path else GLOBAL_CONFIG
    data: dict = {}
    if path.exists():
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Could not parse {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} is not a mapping.")

    config = {}
    for key, default in CONFIG_DEFAULTS.items():
        value = data.get(key, default)
        if isinstance(default, dict):
            value = dict(value or {})
        config[key] = value
    # Keep unknown keys so newer versions don't lose them on save
    for key, value in data.items():
        config.setdefault(key, value)
    config["_config_path"] = path
    return config


def save_config(config: dict) -> Path:
    """Write the document back. Last writer wins; there is no locking."""
    path = Path(config.get("_config_path") or GLOBAL_CONFIG)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        k: v
        for k, v in config.items()
        if not k.startswith("_") and v is not None and v != {}
    }
    with open(path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=True)
    return path


def load_env(env_file: str | None = ".env", base_dir: str = ".") -> dict[str, str]:
    """Load .env file and merge with os.environ.

    .env values take precedence over os.environ for the vars they define.
    """
    env = dict(os.environ)
    if env_file:
        dotenv_path = Path(base_dir) / env_file
        if dotenv_path.exists():
            dotenv_vars = dotenv_values(str(dotenv_path))
            env.update({k: v for k, v in dotenv_vars.items() if v is not None})
    return env


def resolve_base_url(config: dict, env: dict[str, str] | None = None) -> str:
    """CURLME_API_URL beats the stored base_url; bare hosts get http://."""
    env = os.environ if env is None else env
    url = env.get(BASE_URL_ENV) or config.get("base_url") or DEFAULT_BASE_URL
    if not url.startswith("http"):
        url = f"http://{url}"
    return url.rstrip("/")


def endpoint_for(base_url: str, bin_id: str) -> str:
    return f"{base_url}/h/{bin_id}"


def dashboard_for(base_url: str, bin_id: str, request_id: str | None = None) -> str:
    from urllib.parse import quote

    url = f"{base_url}/bin/{bin_id}"
    if request_id:
        url += f"?requestId={quote(request_id, safe='')}"
    return url
