import os
import yaml
import argparse
from pathlib import Path

DEFAULT_CONFIG_PATH = Path(os.getenv("GATELEARN_CONFIG", "gatelearn_config.yaml"))

# Used for any key the YAML file and the command line leave unset
DEFAULTS = {
    "device": "cpu",
    "dtype": "float64",
    "seed": 997,
    "display": False,
}

def load_yaml_config(path: str = None) -> dict:
    """Load configuration from a YAML file."""
    cfg_path = Path(path or os.getenv("GATELEARN_CONFIG", DEFAULT_CONFIG_PATH))
    if not cfg_path.exists():
        return {}
    with open(cfg_path, "r") as f:
        return yaml.safe_load(f) or {}

def parse_cli_args(argv=None) -> dict:
    """Parse CLI overrides (used for runtime config tweaking)."""
    parser = argparse.ArgumentParser(description="GateLearn Config Override", add_help=False)

    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument("--device", type=str, choices=["cpu", "gpu"], help="Device to use")
    parser.add_argument("--dtype", type=str, choices=["float32", "float64"], help="Floating point precision")
    parser.add_argument("--seed", type=int, help="Random seed")
    parser.add_argument("--display", type=str, choices=["true", "false"], help="Print layer messages")

    args, _ = parser.parse_known_args(argv)

    cli_config = {}
    for key, value in vars(args).items():
        if value is not None:
            # Cast booleans properly
            if value == "true":
                value = True
            elif value == "false":
                value = False
            cli_config[key] = value

    return cli_config

def merge_configs(base: dict, override: dict) -> dict:
    """Merge CLI overrides into YAML base config (CLI wins)."""
    final = base.copy()
    final.update(override)
    return final

def load_config(argv=None) -> dict:
    """Main config loader: defaults, then YAML, then CLI overrides."""
    cli = parse_cli_args(argv)
    yaml_cfg = load_yaml_config(cli.pop("config", None))
    return merge_configs(merge_configs(DEFAULTS, yaml_cfg), cli)

# === The global CONFIG dict you import elsewhere ===
CONFIG = load_config()
