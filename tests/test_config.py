import argparse
import json
from pathlib import Path

import pytest

from statespace.pipelines import validate_filters
from statespace.utils import ConfigError, apply_cli_config, load_config


def test_validate_filters_config_parsing(tmp_path):
    output = tmp_path / "reports" / "summary.json"
    config = {
        "num_steps": "40",
        "seed": 3,
        "num-members": 64,
        "num_particles": 250,
        "missing_step": -1,
        "output_json": str(output),
        "log_level": "DEBUG",
    }
    config_path = tmp_path / "validate.json"
    config_path.write_text(json.dumps(config))

    args = validate_filters.parse_args(["--config", str(config_path)])

    assert args.num_steps == 40
    assert args.seed == 3
    assert args.num_members == 64
    assert args.num_particles == 250
    assert args.missing_step == -1
    assert args.output_json == output
    assert args.log_level == "DEBUG"


def test_command_line_overrides_config(tmp_path):
    config_path = tmp_path / "validate.yaml"
    config_path.write_text("num_steps: 12\nseed: 9\n")

    args = validate_filters.parse_args(
        ["--config", str(config_path), "--seed", "1"]
    )

    assert args.num_steps == 12
    assert args.seed == 1
    assert args.output_json is None


def test_unknown_option_is_rejected(tmp_path):
    config_path = tmp_path / "bad.json"
    config_path.write_text(json.dumps({"num_step": 10}))

    with pytest.raises(ConfigError, match="num_step"):
        validate_filters.parse_args(["--config", str(config_path)])


def test_load_config_requires_mapping(tmp_path):
    config_path = tmp_path / "list.json"
    config_path.write_text(json.dumps([1, 2]))

    with pytest.raises(ConfigError):
        load_config(config_path)
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.json")

    empty = tmp_path / "empty.yml"
    empty.write_text("")
    assert load_config(empty) == {}


def test_apply_cli_config_coerces_to_default_types():
    namespace = argparse.Namespace(flag=False, rate=0.5, name="a", target=Path("x"))

    apply_cli_config(
        namespace, {"flag": "yes", "rate": "0.25", "name": 7, "target": "~/out"}
    )

    assert namespace.flag is True
    assert namespace.rate == 0.25
    assert namespace.name == "7"
    assert namespace.target == Path("~/out").expanduser()

    with pytest.raises(ConfigError):
        apply_cli_config(namespace, {"flag": "maybe"})
    with pytest.raises(ConfigError):
        apply_cli_config(namespace, {"rate": "fast"})
