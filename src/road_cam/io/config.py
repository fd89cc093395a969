# src/road_cam/io/config.py
from pathlib import Path

import yaml

from road_cam.config.models import FollowScenarioModel


def load_scenario(path: str | Path) -> FollowScenarioModel:
    """Scenario from a .json or .yaml/.yml file."""
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        return FollowScenarioModel.model_validate(yaml.safe_load(text) or {})
    return FollowScenarioModel.model_validate_json(text)
