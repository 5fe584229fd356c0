"""
Reading the YAML config file: path resolution and ${VAR} expansion.
"""

import os
import re
from pathlib import Path

import yaml

# Repository root; relative config paths are taken from here
_PROJ_DIR = Path(__file__).resolve().parents[2]

# ${VAR:-default}
_DEFAULT_VAR_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*):-([^}]*)\}")


def resolve_config_path(path: str) -> str:
    """Return ``path`` unchanged when absolute, else joined onto the repository root."""
    if os.path.isabs(path):
        return path
    return str(_PROJ_DIR / path)


def expand_env(text: str) -> str:
    """
    Expand environment references in raw config text.

    ``${VAR:-default}`` takes the default when VAR is unset or empty;
    ``${VAR}`` and ``$VAR`` follow os.path.expandvars, so unset references
    are left as written.
    """
    text = _DEFAULT_VAR_RE.sub(lambda m: os.environ.get(m.group(1)) or m.group(2), text)
    return os.path.expandvars(text)


def load_yaml_with_env_expansion(path: str) -> dict:
    """
    Load a YAML mapping after environment expansion; an empty file is ``{}``.

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If the expanded text is not valid YAML
    """
    try:
        raw = Path(path).read_text()
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found at: {path}") from None

    try:
        data = yaml.safe_load(expand_env(raw))
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Error parsing YAML configuration {path}: {e}") from e
    return data or {}
