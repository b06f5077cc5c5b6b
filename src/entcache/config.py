"""Where entity APIs live and how long their query results stay fresh.

An :class:`~entcache.cache.EntityCache` is configured in code; this module
lets the CLI (or an application) keep that setup on disk instead. A
*profile* names one entity API: its base URL, request limits and an
optional TTL override for the queries run against it.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.entcache/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_data_dir`, :func:`get_profiles_dir`.
* **Global config** -- defaults shared by every API: which profile to use,
  the output format and the query TTL.
* **Profiles** -- ``profiles/<name>.json``, one per entity API.
* **Which API?** -- :func:`resolve_config` picks the profile from the CLI
  flag, ``ENTCACHE_PROFILE``, ``./entcache.json`` or the global default, and
  :func:`effective_cache_config` picks the TTL the query cache runs with.

Profiles and config are replaced atomically (:func:`_atomic_write`).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from entcache.exceptions import ConfigError
from entcache.models import CacheConfig, GlobalConfig, Profile

_APP_NAME = "entcache"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "entcache.json"

ENV_PROFILE = "ENTCACHE_PROFILE"
ENV_BASE_URL = "ENTCACHE_BASE_URL"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/entcache/`` (default ``~/.config/entcache/``).
    On macOS/Windows: ``~/.entcache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory, creating it if necessary. Crash logs go here.

    On Linux/BSD: ``$XDG_DATA_HOME/entcache/`` (default ``~/.local/share/entcache/``).
    On macOS/Windows: ``~/.entcache/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_profiles_dir() -> Path:
    """Return ``<config_dir>/profiles/``, creating it if necessary."""
    path = get_config_dir() / "profiles"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Replace *path* with *data* in one step.

    The temp file must share a directory with *path* for ``os.replace`` to
    be a rename.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid {what} at {path}: {exc}") from exc


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the shared defaults; a fresh install gets a 24 hour query TTL.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    data = _read_json(path, "global config")
    try:
        return GlobalConfig.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Profiles ---


def _profile_path(name: str) -> Path:
    return get_profiles_dir() / f"{name}.json"


def list_profiles() -> list[str]:
    """Names of the configured entity APIs, sorted."""
    return sorted(p.stem for p in get_profiles_dir().glob("*.json") if p.is_file())


def load_profile(name: str) -> Profile:
    """Load the profile for one entity API.

    Raises:
        ConfigError: If the profile does not exist, contains invalid JSON,
            or fails validation.
    """
    path = _profile_path(name)
    if not path.is_file():
        raise ConfigError(
            f"Profile '{name}' not found at {path}. "
            f"Add it with 'entcache profile add {name} -u URL'."
        )
    data = _read_json(path, f"profile '{name}'")
    try:
        return Profile.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid profile '{name}' at {path}: {exc}") from exc


def save_profile(profile: Profile) -> None:
    data = profile.model_dump(mode="json", exclude_none=True)
    _atomic_write(_profile_path(profile.name), json.dumps(data, indent=2) + "\n")


def delete_profile(name: str) -> None:
    """Forget an entity API.

    Raises:
        ConfigError: If the profile does not exist.
    """
    path = _profile_path(name)
    if not path.is_file():
        raise ConfigError(f"Profile '{name}' not found at {path}")
    path.unlink()


def profile_exists(name: str) -> bool:
    return _profile_path(name).is_file()


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load ``./entcache.json``, which pins the API a project talks to.

    Returns:
        The parsed JSON as a dict, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    return _read_json(path, "project config")


# --- Precedence resolution ---


def resolve_config(
    cli_profile: Optional[str] = None,
    cli_base_url: Optional[str] = None,
    cli_format: Optional[str] = None,
) -> tuple[GlobalConfig, Optional[Profile]]:
    """Work out which entity API a command talks to.

    The base URL can be redirected (say, at a staging server) without
    editing the profile. Precedence, high to low:
        1. CLI flags (``cli_profile``, ``cli_base_url``, ``cli_format``)
        2. Environment variables (``ENTCACHE_PROFILE``, ``ENTCACHE_BASE_URL``)
        3. Project config (``./entcache.json``)
        4. User config (``~/.config/entcache/config.json``)
        5. Defaults

    Returns:
        A tuple of ``(global_config, active_profile_or_None)``.
    """
    global_cfg = load_global_config()

    resolved_profile_name: Optional[str] = global_cfg.default_profile

    project = load_project_config()
    if project is not None and project.get("default_profile") is not None:
        resolved_profile_name = project["default_profile"]

    env_profile = os.environ.get(ENV_PROFILE)
    if env_profile:
        resolved_profile_name = env_profile

    if cli_profile is not None:
        resolved_profile_name = cli_profile

    if resolved_profile_name is None and global_cfg.auto_select_single_profile:
        profiles = list_profiles()
        if len(profiles) == 1:
            resolved_profile_name = profiles[0]

    profile: Optional[Profile] = None
    if resolved_profile_name is not None:
        profile = load_profile(resolved_profile_name)

    if profile is not None:
        env_base_url = os.environ.get(ENV_BASE_URL)
        if cli_base_url is not None:
            profile.base_url = cli_base_url
        elif env_base_url:
            profile.base_url = env_base_url

    if cli_format is not None:
        global_cfg.output.format = cli_format

    return global_cfg, profile


def effective_cache_config(global_cfg: GlobalConfig, profile: Optional[Profile]) -> CacheConfig:
    """TTL settings for the query cache: the profile's own, else the global ones.

    An API whose data changes often can carry a short TTL while the rest
    keep the default.
    """
    if profile is not None and profile.cache is not None:
        return profile.cache
    return global_cfg.cache
