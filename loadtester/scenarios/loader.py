"""Reading and writing scenario JSON files."""

from pathlib import Path

import structlog
from pydantic import ValidationError

from .models import Scenario

logger = structlog.get_logger()


class ScenarioError(ValueError):
    """Raised when a scenario file cannot be read or does not describe a scenario."""


def parse_scenario(raw: str | bytes) -> Scenario:
    try:
        return Scenario.model_validate_json(raw)
    except ValidationError as exc:
        raise ScenarioError(f"invalid scenario: {exc}") from exc


def load_scenario(path: str | Path) -> Scenario:
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ScenarioError(f"cannot read scenario file {path}: {exc}") from exc

    scenario = parse_scenario(raw)
    logger.info("scenario_loaded", path=str(path), requests=len(scenario.requests))
    return scenario


def dump_scenario(scenario: Scenario) -> str:
    return scenario.model_dump_json(by_alias=True, indent=2)


def save_scenario(scenario: Scenario, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_scenario(scenario), encoding="utf-8")
    logger.info("scenario_written", path=str(path), requests=len(scenario.requests))
    return path
