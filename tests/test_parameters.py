"""
Tests for parameter loading (parameters.py).
"""

import pytest

import parameters
from parameters import (
    CATALOG_PARAMS,
    QUERY_PARAMS,
    RETILE_PARAMS,
    load_params,
    load_params_from_env,
    load_params_from_file,
    parse_param_override,
    print_params,
)


class TestDefaults:
    """Tests for default values."""

    def test_defaults_without_overrides(self):
        """With nothing to override the defaults come back unchanged."""
        params = load_params(use_env=False)
        assert params["QUERY_PARAMS"] == QUERY_PARAMS
        assert params["RETILE_PARAMS"] == RETILE_PARAMS
        assert params["CATALOG_PARAMS"] == CATALOG_PARAMS

    def test_defaults_are_copied(self):
        """Changing loaded parameters does not touch the module defaults."""
        params = load_params(use_env=False)
        params["RETILE_PARAMS"]["tiling_size"] = 1
        assert RETILE_PARAMS["tiling_size"] == 500.0


class TestOverrides:
    """Tests for key=value overrides."""

    @pytest.mark.parametrize("text, expected", [
        ("tiling_size=250", ("RETILE_PARAMS", "tiling_size", 250)),
        ("radius=12.5", ("QUERY_PARAMS", "radius", 12.5)),
        ("use_index_file=false", ("CATALOG_PARAMS", "use_index_file", False)),
        ("QUERY.buffer=5", ("QUERY_PARAMS", "buffer", 5)),
        ("retile_params.ext=laz", ("RETILE_PARAMS", "ext", "laz")),
    ])
    def test_parse(self, text, expected):
        """Category is explicit or inferred from the parameter name."""
        assert parse_param_override(text) == expected

    def test_shared_names_go_to_retile(self):
        """Names present in both query and retile defaults are retile parameters."""
        assert parse_param_override("workers=8")[0] == "RETILE_PARAMS"

    def test_missing_equals(self):
        """An override needs an '=' sign."""
        with pytest.raises(ValueError, match="Invalid parameter format"):
            parse_param_override("tiling_size")

    def test_numbers_are_not_booleans(self):
        """'1' and '0' stay integers."""
        assert parse_param_override("workers=1")[2] == 1
        assert parse_param_override("workers=1")[2] is not True

    def test_override_applied(self):
        """Overrides end up in the loaded parameters."""
        params = load_params(param_overrides=["tiling_size=250", "QUERY.workers=2"], use_env=False)
        assert params["RETILE_PARAMS"]["tiling_size"] == 250
        assert params["QUERY_PARAMS"]["workers"] == 2
        assert params["RETILE_PARAMS"]["workers"] == RETILE_PARAMS["workers"]


class TestEnvironment:
    """Tests for environment variables."""

    def test_prefixes(self):
        """QUERY_, RETILE_ and CATALOG_ variables are routed to their category."""
        env = {
            "QUERY_BUFFER": "5",
            "RETILE_TILING_SIZE": "250.5",
            "CATALOG_REBUILD_INDEX": "yes",
            "HOME": "/root",
        }
        params = load_params_from_env(env)
        assert params["QUERY_PARAMS"] == {"buffer": 5}
        assert params["RETILE_PARAMS"] == {"tiling_size": 250.5}
        assert params["CATALOG_PARAMS"] == {"rebuild_index": True}

    def test_env_below_cli(self, monkeypatch):
        """CLI overrides win over environment variables."""
        monkeypatch.setenv("RETILE_TILING_SIZE", "250")
        params = load_params(param_overrides=["tiling_size=100"])
        assert params["RETILE_PARAMS"]["tiling_size"] == 100

    def test_env_applied(self, monkeypatch):
        """Environment variables override defaults."""
        monkeypatch.setenv("RETILE_PREFIX", "tile_")
        assert load_params()["RETILE_PARAMS"]["prefix"] == "tile_"


class TestConfigFile:
    """Tests for Python config files."""

    def test_load(self, tmp_path):
        """Categories defined in the file are returned."""
        config = tmp_path / "my_params.py"
        config.write_text("RETILE_PARAMS = {'tiling_size': 1000, 'ext': 'laz'}\n")

        assert load_params_from_file(config) == {"RETILE_PARAMS": {"tiling_size": 1000, "ext": "laz"}}

    def test_file_below_cli_above_defaults(self, tmp_path):
        """A config file overrides defaults and is overridden by the CLI."""
        config = tmp_path / "my_params.py"
        config.write_text("RETILE_PARAMS = {'tiling_size': 1000, 'ext': 'laz'}\n")

        params = load_params(config_file=config, param_overrides=["ext=las"], use_env=False)

        assert params["RETILE_PARAMS"]["tiling_size"] == 1000
        assert params["RETILE_PARAMS"]["ext"] == "las"
        assert params["RETILE_PARAMS"]["buffer"] == RETILE_PARAMS["buffer"]

    def test_missing_file(self, tmp_path):
        """A config file that does not exist raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_params_from_file(tmp_path / "nope.py")


def test_print_params(capsys):
    """print_params lists every category."""
    print_params(parameters.load_params(use_env=False))
    out = capsys.readouterr().out
    for category in parameters.CATEGORIES:
        assert category in out
    assert "tiling_size: 500.0" in out
