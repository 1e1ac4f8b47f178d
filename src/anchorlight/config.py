"""
Anchorlight Configuration

Two sources:
- EngineSettings: timing and feature flags from ANCHORLIGHT_* environment
  variables (a .env file is loaded first if present)
- Static documents (YAML or JSON): the object catalogue, detection scenarios
  and procedure steps

Catalogue format:

    objects:
      - code: "SALT"
        name: "Salt"
        visual: true             # false / omitted -> entry has no visual
        offset:
          position: [0.0, 0.05, 0.0]
          rotation: [0.0, 0.0, 0.0]   # Rodrigues vector (radians)
"""

import os
import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv

from .dispatcher import DetectionEvent
from .errors import CatalogueError
from .geometry import Pose
from .registry import MarkerCode, ObjectEntry, Registry
from .visuals import HighlightVisual

logger = logging.getLogger("AnchorlightConfig")

ENV_PREFIX = "ANCHORLIGHT_"


def _load_env() -> Optional[str]:
    """Load environment variables from the first .env found."""
    possible_paths = [
        Path.cwd() / ".env",
        Path(__file__).resolve().parents[2] / ".env",  # src/anchorlight/../../.env
    ]
    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path, override=False)
            return str(env_path)
    return None


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class EngineSettings:
    """Runtime tuning for one engine instance."""
    flash_seconds: float = 1.0
    blink_interval: float = 0.2
    tick_seconds: float = 1.0
    beam_enabled: bool = True
    timer_minutes: int = 1
    min_minutes: int = 1
    max_minutes: int = 60
    report_history: int = 256

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True, **overrides) -> "EngineSettings":
        """
        Build settings from ANCHORLIGHT_<FIELD> variables.

        Example: ANCHORLIGHT_FLASH_SECONDS=0.5, ANCHORLIGHT_BEAM_ENABLED=false
        """
        if load_dotenv_file:
            env_path = _load_env()
            if env_path:
                logger.debug(f"Loaded environment from {env_path}")

        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = os.environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            try:
                if f.type in (bool, "bool"):
                    values[f.name] = _parse_bool(raw)
                elif f.type in (int, "int"):
                    values[f.name] = int(raw)
                else:
                    values[f.name] = float(raw)
            except ValueError:
                logger.warning(f"Ignoring invalid {ENV_PREFIX}{f.name.upper()}={raw!r}")

        values.update(overrides)
        return cls(**values)


# =============================================================================
# DOCUMENTS
# =============================================================================

def read_document(path: Union[str, Path]) -> Any:
    """Read a YAML (.yaml/.yml) or JSON file."""
    path = Path(path)
    if not path.exists():
        raise CatalogueError(f"File not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise CatalogueError(f"Cannot parse {path}: {e}") from e


def _vector(value: Any, what: str) -> List[float]:
    if value is None:
        return [0.0, 0.0, 0.0]
    try:
        vec = [float(v) for v in value]
    except (TypeError, ValueError) as e:
        raise CatalogueError(f"{what} must be a list of 3 numbers, got {value!r}") from e
    if len(vec) != 3:
        raise CatalogueError(f"{what} must have 3 components, got {len(vec)}")
    return vec


def parse_pose(data: Optional[Dict[str, Any]], what: str = "pose") -> Pose:
    """{position: [x,y,z], rotation: [rx,ry,rz]} -> Pose"""
    if not data:
        return Pose.identity()
    if not isinstance(data, dict):
        raise CatalogueError(f"{what} must be a mapping, got {data!r}")
    return Pose.from_rvec_tvec(
        rvec=_vector(data.get("rotation"), f"{what}.rotation"),
        tvec=_vector(data.get("position"), f"{what}.position"),
    )


def build_registry(objects: List[Dict[str, Any]]) -> Registry:
    """Build a Registry from already-parsed catalogue records."""
    entries = []
    for i, record in enumerate(objects):
        if not isinstance(record, dict):
            raise CatalogueError(f"objects[{i}] must be a mapping")
        code = MarkerCode.parse(record.get("code"))
        name = str(record.get("name") or "").strip()
        if code is None or not name:
            raise CatalogueError(f"objects[{i}] needs a non-empty code and name")

        visual = None
        if record.get("visual", True):
            offset = parse_pose(record.get("offset"), f"{name}.offset")
            visual = HighlightVisual(name, offset=offset)

        entries.append(ObjectEntry(code=code, name=name, highlight_visual=visual))
    return Registry(entries)


def load_catalogue(path: Union[str, Path]) -> Registry:
    """Load the object catalogue from YAML/JSON."""
    document = read_document(path)
    objects = document.get("objects") if isinstance(document, dict) else document
    if not isinstance(objects, list):
        raise CatalogueError(f"{path}: expected an 'objects' list")
    registry = build_registry(objects)
    logger.info(f"Catalogue loaded: {len(registry)} objects from {path}")
    return registry


def load_scenario(path: Union[str, Path]) -> List[List[DetectionEvent]]:
    """
    Load scripted detection batches.

    Format:
        batches:
          - - code: "SALT"
              position: [0.4, 0.0, 1.2]
            - code: "UNKNOWN"
          - []
    """
    document = read_document(path)
    raw_batches = document.get("batches") if isinstance(document, dict) else document
    if not isinstance(raw_batches, list):
        raise CatalogueError(f"{path}: expected a 'batches' list")

    batches = []
    for b, raw_batch in enumerate(raw_batches):
        batch = []
        for record in raw_batch or []:
            if not isinstance(record, dict):
                raise CatalogueError(f"batches[{b}] entries must be mappings")
            batch.append(DetectionEvent(
                payload=record.get("code"),
                pose=parse_pose(record, f"batches[{b}]"),
            ))
        batches.append(batch)
    return batches
