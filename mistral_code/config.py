"""TOML settings for mistral-code.

Two optional files are read: a global one under the XDG config directory and
a per-project ``mistral-code.toml`` in the base directory. Command-line flags
beat the project file, which beats the global file, which beats the built-in
defaults below.
"""

import argparse
import os
import tomllib
from pathlib import Path
from typing import Any

from . import fmt
from .errors import ConfigError

_UNSET = object()  # argparse default meaning "flag not given"

DEFAULT_MODEL = "mistral/mistral-small-latest"
API_KEY_ENV = "MISTRAL_API_KEY"
PROJECT_CONFIG_NAME = "mistral-code.toml"
GLOBAL_CONFIG_NAME = "config.toml"

CONFIG_KEYS: dict[str, type | tuple[type, ...]] = {
    "model": str,
    "api_key": str,
    "base_url": str,
    "max_output_tokens": int,
    "temperature": (int, float),
    "top_p": (int, float),
    "seed": int,
    "system_prompt": str,
    "color": bool,
    "quiet": bool,
}

# Values used for any dest still holding _UNSET after config is applied.
BUILTIN_DEFAULTS: dict[str, Any] = {
    "model": DEFAULT_MODEL,
    "api_key": None,
    "base_url": None,
    "max_output_tokens": 8192,
    "temperature": None,
    "top_p": None,
    "seed": None,
    "system_prompt": None,
    "color": False,
    "no_color": False,
    "quiet": False,
}


def global_config_dir() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / "mistral-code"


def _describe(expected: type | tuple[type, ...]) -> str:
    types = expected if isinstance(expected, tuple) else (expected,)
    return " or ".join(t.__name__ for t in types)


def _check_value(key: str, value: Any, source: str) -> None:
    expected = CONFIG_KEYS[key]
    # TOML booleans are Python bools, which isinstance() also accepts as ints.
    wrong_bool = isinstance(value, bool) and expected is not bool
    if wrong_bool or not isinstance(value, expected):
        raise ConfigError(
            f"{source}: {key!r} expected {_describe(expected)}, "
            f"got {type(value).__name__}"
        )


def _filter_known(raw: dict, source: str) -> dict:
    """Drop unknown keys with a warning and type-check the rest."""
    known = {}
    for key, value in raw.items():
        if key not in CONFIG_KEYS:
            fmt.warning(f"{source}: unknown config key {key!r}, ignored")
            continue
        _check_value(key, value, source)
        known[key] = value
    return known


def _inside_git_checkout(path: Path) -> bool:
    return any((parent / ".git").exists() for parent in path.parents)


def _read_toml(path: Path) -> dict:
    if not path.is_file():
        return {}
    try:
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{path}: invalid TOML: {e}") from e
    return _filter_known(raw, str(path))


def load_config(base_dir: Path) -> dict:
    """Return the merged settings from the global and project files.

    Only keys actually present in a file appear in the result.
    """
    merged = _read_toml(global_config_dir() / GLOBAL_CONFIG_NAME)

    project_path = Path(base_dir).resolve() / PROJECT_CONFIG_NAME
    project = _read_toml(project_path)
    if "api_key" in project and _inside_git_checkout(project_path):
        fmt.warning(
            f"{project_path} sets api_key inside a git-tracked directory and "
            f"may be committed by mistake; prefer the {API_KEY_ENV} variable."
        )

    merged.update(project)
    return merged


def apply_config_to_args(args: argparse.Namespace, config: dict) -> None:
    """Fill flags the user did not pass from config, then from BUILTIN_DEFAULTS."""

    def unset(dest: str) -> bool:
        return getattr(args, dest, _UNSET) is _UNSET

    for key, value in config.items():
        if key == "color":
            # one config key drives the --color/--no-color pair
            if unset("color") and unset("no_color"):
                args.color = value
                args.no_color = not value
        elif unset(key):
            setattr(args, key, value)

    for dest, default in BUILTIN_DEFAULTS.items():
        if unset(dest):
            setattr(args, dest, default)


def resolve_api_key(args: argparse.Namespace) -> str:
    """Pick the API key from --api-key / config, else from the environment."""
    key = args.api_key or os.environ.get(API_KEY_ENV)
    if key:
        return key
    raise ConfigError(
        f"{API_KEY_ENV} environment variable is required "
        "(or pass --api-key, or set api_key in the config file)"
    )


_TEMPLATE = """\
# mistral-code configuration ({scope})
# Location: {location}
#
# Command-line flags take precedence. Uncomment only what you want to change.

# model = "{model}"
# api_key = "..."              # {env} is usually the better place
# base_url = "https://..."

# max_output_tokens = 8192
# temperature = 0.7
# top_p = 1.0
# seed = 42

# system_prompt = "You are a careful coding assistant."

# color = true                 # false disables color, leave unset for auto
# quiet = false
"""


def generate_config(project: bool = False) -> str:
    """Return a fully commented-out config template."""
    if project:
        scope, location = "Project config", f"<project>/{PROJECT_CONFIG_NAME}"
    else:
        scope, location = "Global config", f"~/.config/mistral-code/{GLOBAL_CONFIG_NAME}"
    return _TEMPLATE.format(
        scope=scope, location=location, model=DEFAULT_MODEL, env=API_KEY_ENV
    )
