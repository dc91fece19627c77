"""Scenario text parsing and scenario/pattern file loading."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from .errors import ScenarioFileError
from .models import ParsedStep, PatternDefinition, ScenarioDefinition, StepType

DEFAULT_TITLE = "Untitled Scenario"
_KEYWORDS = tuple(step_type.value for step_type in StepType)
_TITLE_PATTERN = re.compile(r"Scenario:([^\n]+)")
_TEXT_SUFFIXES = {".feature", ".txt", ".scenario"}


def parse_step(line: str) -> ParsedStep:
    """Classify one line; text without a keyword is treated as an ``And`` continuation."""
    raw_text = line.strip()
    for keyword in _KEYWORDS:
        if raw_text.startswith(f"{keyword} "):
            return ParsedStep(
                step_type=StepType(keyword),
                raw_text=raw_text,
                clean_text=raw_text[len(keyword) + 1:].strip(),
            )
    return ParsedStep(step_type=StepType.AND, raw_text=raw_text, clean_text=raw_text)


def is_step_line(line: str) -> bool:
    stripped = line.strip()
    return any(stripped.startswith(f"{keyword} ") for keyword in _KEYWORDS)


def parse_scenario_text(content: str) -> list[ParsedStep]:
    """Split scenario source into steps, skipping blank and non-step lines."""
    return [parse_step(line) for line in content.splitlines() if is_step_line(line)]


def extract_title(content: str) -> str:
    match = _TITLE_PATTERN.search(content)
    return match.group(1).strip() if match else DEFAULT_TITLE


def load_scenario(path: Path) -> ScenarioDefinition:
    """Load a scenario from YAML, or wrap a plain ``.feature``/``.txt`` file."""

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ScenarioFileError(f"Cannot read scenario file {path}: {exc}") from exc

    if path.suffix.lower() in _TEXT_SUFFIXES:
        return ScenarioDefinition(scenario_id=path.stem, title=extract_title(text), content=text)

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ScenarioFileError(f"Scenario file {path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ScenarioFileError(f"Scenario file {path} must contain a mapping")
    data.setdefault("scenario_id", path.stem)
    try:
        scenario = ScenarioDefinition.model_validate(data)
    except ValidationError as exc:
        raise ScenarioFileError(f"Scenario file {path} is invalid: {exc}") from exc
    if scenario.title is None:
        scenario.title = extract_title(scenario.content)
    return scenario


def load_patterns(path: Optional[Path]) -> list[PatternDefinition]:
    """Load user-authored pattern definitions from a YAML list."""

    if path is None:
        return []
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ScenarioFileError(f"Cannot read patterns file {path}: {exc}") from exc
    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("patterns", [])
    if not isinstance(data, list):
        raise ScenarioFileError(f"Patterns file {path} must contain a list of patterns")
    try:
        return [PatternDefinition.model_validate(entry) for entry in data]
    except ValidationError as exc:
        raise ScenarioFileError(f"Patterns file {path} is invalid: {exc}") from exc
