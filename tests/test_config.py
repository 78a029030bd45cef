"""Tests for config file loading, validation and merging."""

import argparse

import pytest

from mistral_code.config import (
    DEFAULT_MODEL,
    _UNSET,
    apply_config_to_args,
    generate_config,
    global_config_dir,
    load_config,
    resolve_api_key,
)
from mistral_code.errors import AgentError, ConfigError


@pytest.fixture
def xdg(tmp_path, monkeypatch):
    """Point the global config at a temporary directory."""
    home = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home))
    return home / "mistral-code"


def _write_global(xdg, text):
    xdg.mkdir(parents=True, exist_ok=True)
    (xdg / "config.toml").write_text(text, encoding="utf-8")


def _flat(text):
    """Collapse the line wrapping Rich applies to long diagnostics."""
    return " ".join(text.split())


def _make_args(**overrides):
    """Namespace with every config-able dest unset, like a bare command line."""
    defaults = dict(
        model=_UNSET,
        api_key=_UNSET,
        base_url=_UNSET,
        max_output_tokens=_UNSET,
        temperature=_UNSET,
        top_p=_UNSET,
        seed=_UNSET,
        system_prompt=_UNSET,
        color=_UNSET,
        no_color=_UNSET,
        quiet=_UNSET,
    )
    defaults.update(overrides)
    return argparse.Namespace(**defaults)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_no_files(self, xdg, tmp_path):
        project = tmp_path / "proj"
        project.mkdir()
        assert load_config(project) == {}

    def test_global_dir_respects_xdg(self, xdg):
        assert global_config_dir() == xdg

    def test_global_only(self, xdg, tmp_path):
        _write_global(xdg, 'model = "mistral/large"\nseed = 3\n')
        assert load_config(tmp_path) == {"model": "mistral/large", "seed": 3}

    def test_project_overrides_global(self, xdg, tmp_path):
        _write_global(xdg, 'model = "global-model"\ntemperature = 0.9\n')
        (tmp_path / "mistral-code.toml").write_text(
            'model = "project-model"\n', encoding="utf-8"
        )
        assert load_config(tmp_path) == {"model": "project-model", "temperature": 0.9}

    def test_unknown_key_warns_and_is_dropped(self, xdg, tmp_path, capsys):
        _write_global(xdg, 'model = "m"\nmax_turns = 5\n')
        assert load_config(tmp_path) == {"model": "m"}
        assert "unknown config key 'max_turns'" in _flat(capsys.readouterr().err)

    def test_wrong_type(self, xdg, tmp_path):
        _write_global(xdg, "seed = \"forty-two\"\n")
        with pytest.raises(ConfigError, match="'seed' expected int"):
            load_config(tmp_path)

    def test_bool_is_not_an_int(self, xdg, tmp_path):
        _write_global(xdg, "max_output_tokens = true\n")
        with pytest.raises(ConfigError, match="got bool"):
            load_config(tmp_path)

    def test_invalid_toml(self, xdg, tmp_path):
        _write_global(xdg, "model = \n")
        with pytest.raises(ConfigError, match="invalid TOML"):
            load_config(tmp_path)

    def test_config_error_is_agent_error(self):
        assert issubclass(ConfigError, AgentError)

    def test_api_key_in_git_project_warns(self, xdg, tmp_path, capsys):
        (tmp_path / ".git").mkdir()
        (tmp_path / "mistral-code.toml").write_text('api_key = "secret"\n', encoding="utf-8")
        assert load_config(tmp_path)["api_key"] == "secret"
        assert "git-tracked" in _flat(capsys.readouterr().err)


# ---------------------------------------------------------------------------
# Applying to args
# ---------------------------------------------------------------------------


class TestApplyConfig:
    def test_defaults_fill_unset(self):
        args = _make_args()
        apply_config_to_args(args, {})
        assert args.model == DEFAULT_MODEL
        assert args.max_output_tokens == 8192
        assert args.temperature is None
        assert args.color is False
        assert args.no_color is False
        assert args.quiet is False

    def test_config_fills_unset(self):
        args = _make_args()
        apply_config_to_args(args, {"model": "cfg-model", "quiet": True})
        assert args.model == "cfg-model"
        assert args.quiet is True

    def test_cli_wins(self):
        args = _make_args(model="cli-model")
        apply_config_to_args(args, {"model": "cfg-model"})
        assert args.model == "cli-model"

    def test_color_false_means_no_color(self):
        args = _make_args()
        apply_config_to_args(args, {"color": False})
        assert args.color is False
        assert args.no_color is True

    def test_color_flag_beats_config(self):
        args = _make_args(color=True)
        apply_config_to_args(args, {"color": False})
        assert args.color is True
        assert args.no_color is False


# ---------------------------------------------------------------------------
# API key and template
# ---------------------------------------------------------------------------


class TestResolveApiKey:
    def test_from_args(self, monkeypatch):
        monkeypatch.setenv("MISTRAL_API_KEY", "env")
        assert resolve_api_key(argparse.Namespace(api_key="arg")) == "arg"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MISTRAL_API_KEY", "env")
        assert resolve_api_key(argparse.Namespace(api_key=None)) == "env"

    def test_missing(self, monkeypatch):
        monkeypatch.delenv("MISTRAL_API_KEY", raising=False)
        with pytest.raises(ConfigError, match="MISTRAL_API_KEY"):
            resolve_api_key(argparse.Namespace(api_key=None))


class TestGenerateConfig:
    def test_global_template(self):
        text = generate_config()
        assert "Global config" in text
        assert f'# model = "{DEFAULT_MODEL}"' in text

    def test_template_is_all_comments(self):
        for line in generate_config(project=True).splitlines():
            assert line == "" or line.startswith("#")
