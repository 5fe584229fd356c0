"""
Asset loading: instruction text (markdown) and tool manifests (JSON).
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog

from relay_agent.errors import AssetError

logger = structlog.get_logger(__name__)

PACKAGED_ASSETS = Path(__file__).resolve().parent.parent / "assets"


class AssetLoader:
    """Reads assets from one directory; names may not escape it."""

    def __init__(self, directory: Optional[str] = None):
        self.directory = Path(directory).resolve() if directory else PACKAGED_ASSETS

    def _path(self, name: str) -> Path:
        if not name:
            raise AssetError("Asset name is empty")
        path = (self.directory / name).resolve()
        if self.directory not in path.parents:
            raise AssetError(f"Asset '{name}' is outside the assets directory")
        if not path.is_file():
            raise AssetError(f"Asset '{name}' not found in {self.directory}")
        return path

    def load_instructions(self, name: str) -> str:
        """
        Raises:
            AssetError: If the file is missing, unreadable or empty
        """
        path = self._path(name)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise AssetError(f"Cannot read instructions '{name}': {e}") from e
        if not text.strip():
            raise AssetError(f"Instructions '{name}' are empty")
        return text

    def load_catalog(self, name: str) -> List[Dict[str, Any]]:
        """
        Load a tool manifest: a JSON list of tool entries, or an object with a
        ``tools`` list.

        Raises:
            AssetError: If the file is missing or not a valid manifest
        """
        path = self._path(name)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise AssetError(f"Cannot load tool manifest '{name}': {e}") from e
        if isinstance(data, dict):
            data = data.get("tools")
        if not isinstance(data, list):
            raise AssetError(f"Tool manifest '{name}' must contain a list of tools")
        return data

    def load(self, context_file: str, manifest_file: str) -> Tuple[str, List[Dict[str, Any]]]:
        instructions = self.load_instructions(context_file)
        catalog = self.load_catalog(manifest_file)
        logger.info("Assets loaded", context_file=context_file, manifest_file=manifest_file, tools=len(catalog))
        return instructions, catalog
