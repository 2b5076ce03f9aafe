import logging
from typing import Any, Dict, Iterable, List

import yaml
from pydantic import ValidationError

from services.drive_engine.models import EngineConfig, Marker

logger = logging.getLogger(__name__)


class ConfigValidationError(ValueError):
    """Custom exception for configuration errors not covered by Pydantic."""
    pass


def _check_drives(names: Iterable[str], known: set, where: str) -> None:
    for name in names:
        if name not in known:
            raise ConfigValidationError(f"Unknown drive '{name}' in {where}")


def _check_markers(groups: Dict[str, List[Marker]], where: str) -> None:
    for group_name, markers in groups.items():
        if not markers:
            raise ConfigValidationError(f"Empty marker group '{group_name}' in {where}")


def _side_markers(jung, side_name: str) -> List[Marker]:
    energy = getattr(jung.energy, side_name)
    groups = [energy.introvert, energy.extrovert, energy.introvert_archetype or {}]
    markers = [m for group in groups for ms in group.values() for m in ms]
    for axis in (jung.perception, jung.judgment, jung.orientation):
        side = getattr(axis, side_name)
        for field_name in type(side).model_fields:
            markers.extend(getattr(side, field_name))
    return markers


def load_engine_config_data(data: Dict[str, Any]) -> EngineConfig:
    """
    Validates the raw dictionary data against the EngineConfig model
    and performs cross-reference checks on drive names and pair tables.
    """
    try:
        config = EngineConfig.model_validate(data)
    except ValidationError as e:
        # Re-raise Pydantic's validation error for schema issues
        raise e

    drives = set(config.drives)
    if len(drives) != len(config.drives):
        raise ConfigValidationError("Duplicate drive names in 'drives'")
    if config.aspirational_drive not in drives:
        raise ConfigValidationError(f"Aspirational drive '{config.aspirational_drive}' is not a known drive")

    for kind in ("innate", "surface"):
        if kind not in config.pair_tables:
            raise ConfigValidationError(f"Missing pair table '{kind}'")
        seen_pairs = set()
        for index, (front, back) in enumerate(config.pair_tables[kind].pairs, start=1):
            _check_drives((front, back), drives, f"{kind} pair q{index}")
            # Self pairs (private vs public) may repeat; cross pairs may not.
            if front == back:
                continue
            key = frozenset((front, back))
            if key in seen_pairs:
                raise ConfigValidationError(f"Duplicate {kind} pair {front}-{back} at q{index}")
            seen_pairs.add(key)

    jung = config.jung
    for side_name in ("innate", "surface"):
        question_count = len(config.pair_tables[side_name].pairs)
        for marker in _side_markers(jung, side_name):
            if marker.question > question_count:
                raise ConfigValidationError(
                    f"Jung marker q{marker.question} is outside the {side_name} test (q1..q{question_count})"
                )
        energy = getattr(jung.energy, side_name)
        _check_markers(energy.introvert, f"energy.{side_name}.introvert")
        _check_markers(energy.extrovert, f"energy.{side_name}.extrovert")
        if energy.archetype_drives:
            for pole, names in energy.archetype_drives.items():
                _check_drives(names, drives, f"energy.{side_name}.archetype_drives.{pole}")

    partner = config.partner
    for block in partner.blocks:
        where = f"partner block '{block.block}'"
        _check_drives([block.weight.drive], drives, where)
        for need in block.needs:
            _check_drives([need.partner, need.drive] + ([need.minus] if need.minus else []), drives, where)
        for value_need in block.value_needs:
            _check_drives([value_need.drive], drives, where)
    for rule in partner.caps:
        _check_drives([rule.partner] + [c.drive for c in rule.components], drives, f"partner cap '{rule.partner}'")
    for partner_drive, support in partner.scripts.items():
        _check_drives(
            [partner_drive] + support.innate_support + support.surface_support,
            drives,
            f"partner script '{partner_drive}'",
        )

    _check_drives(config.reports.instrumentation.private_context_drives, drives, "reports.instrumentation")

    return config


def load_engine_config_from_file(file_path: str) -> EngineConfig:
    """
    Loads the engine tables from a YAML file, validates them,
    and returns an EngineConfig object.
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigValidationError(f"File not found: {file_path}")
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Error parsing YAML file {file_path}: {e}")

    if data is None:
        raise ConfigValidationError(f"YAML file is empty or invalid: {file_path}")

    config = load_engine_config_data(data)
    logger.info(f"Loaded drive engine tables version {config.version} from {file_path}")
    return config
