"""YAML config loading with env var expansion."""

import os
import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import AbcScribeConfig


def load_config(cli_path: str | None = None) -> AbcScribeConfig:
    """Load config with resolution order: CLI > project-local > user-global > defaults."""
    config_paths = [
        Path(cli_path) if cli_path else None,
        Path("./abcscribe.yaml"),
        Path.home() / ".abcscribe" / "config.yaml",
    ]

    if cli_path and not Path(cli_path).exists():
        raise ValueError(f"Config file not found: {cli_path}")

    for path in config_paths:
        if path and path.exists():
            try:
                with open(path) as f:
                    raw = yaml.safe_load(f)
                if raw is None:
                    continue
                raw = _expand_env_vars(raw)
                return AbcScribeConfig(**raw)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
            except (TypeError, ValidationError) as e:
                raise ValueError(f"Invalid config in {path}: {e}") from e

    return AbcScribeConfig()


def _expand_env_vars(obj: object) -> object:
    """Recursively expand ${VAR} references in strings."""
    if isinstance(obj, str):
        return re.sub(r"\$\{(\w+)\}", lambda m: os.environ.get(m.group(1), ""), obj)
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


# Default YAML template for `abcscribe config init`
DEFAULT_CONFIG_TEMPLATE = """\
# abcscribe.yaml

# LLM Provider
llm:
  provider: "google"
  model: "gemini-3-pro-preview"  # see `abcscribe models`
  api_key_env: "GOOGLE_API_KEY"
  timeout: 120                   # seconds per HTTP request
  max_retries: 3                 # SDK-level retries on 429/5xx
  # thinking_budgets:
  #   gemini-2.5-flash: 8192

# Conversion loop
conversion:
  max_turns: 6
  preview_threshold: 50          # chars of answer text before previewing without X:
  # fragment_timeout: 90         # seconds to wait for the next streamed fragment

# Syntax validation
validation:
  strict: false                  # require a T: title header
  # prohibited_directives: ["%%measure", "%%page", "%%staves", "%%score"]

# Logging
log_level: "info"              # debug | info | warn | error
log_format: "text"             # text | json
"""
