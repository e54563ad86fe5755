"""
StatsGuard - Serialization

Wire and file formats for schemas, statistics, anomalies and validation
settings. Wire format is JSON (UTF-8 bytes); files are JSON, or YAML when
the path ends in .yaml/.yml.

Decoding failures raise DeserializationError before anything is built.

Usage:
    schema = parse_schema(payload)
    payload = serialize_schema(schema)

    schema = load_schema_text("schemas/taxi/schema.yaml")
    write_anomalies_text(report, "out/anomalies.json")
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from statsguard.shared.config import ValidationConfig
from statsguard.validation.anomalies import AnomaliesReport
from statsguard.validation.errors import DeserializationError
from statsguard.validation.schema import Schema
from statsguard.validation.statistics import DatasetFeatureStatistics

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

YAML_SUFFIXES = (".yaml", ".yml")


def _parse(model: type[ModelT], data: bytes | str, what: str) -> ModelT:
    if not isinstance(data, bytes | str):
        raise DeserializationError(
            f"Expected serialized {what} as bytes or str, got {type(data).__name__}"
        )
    try:
        return model.model_validate_json(data)
    except ValidationError as e:
        raise DeserializationError(
            f"Could not decode {what}: {e.error_count()} error(s): {e.errors()[0]['msg']}"
        ) from e


def _serialize(model: BaseModel) -> bytes:
    return model.model_dump_json(exclude_none=True).encode("utf-8")


# =============================================================================
# Wire Format
# =============================================================================


def parse_schema(data: bytes | str) -> Schema:
    return _parse(Schema, data, "schema")


def parse_statistics(data: bytes | str) -> DatasetFeatureStatistics:
    return _parse(DatasetFeatureStatistics, data, "statistics")


def parse_anomalies(data: bytes | str) -> AnomaliesReport:
    return _parse(AnomaliesReport, data, "anomalies")


def parse_validation_config(data: bytes | str) -> ValidationConfig:
    return _parse(ValidationConfig, data, "validation config")


def serialize_schema(schema: Schema) -> bytes:
    return _serialize(schema)


def serialize_statistics(statistics: DatasetFeatureStatistics) -> bytes:
    return _serialize(statistics)


def serialize_anomalies(report: AnomaliesReport) -> bytes:
    return _serialize(report)


# =============================================================================
# Files
# =============================================================================


def _load_file(model: type[ModelT], path: str | Path, what: str) -> ModelT:
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() not in YAML_SUFFIXES:
        return _parse(model, text, what)

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise DeserializationError(f"Could not parse {what} YAML in {path}: {e}") from e
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise DeserializationError(
            f"Could not decode {what} from {path}: {e.error_count()} error(s)"
        ) from e


def _write_file(model: BaseModel, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data: dict[str, Any] = model.model_dump(mode="json", exclude_none=True)
    if path.suffix.lower() in YAML_SUFFIXES:
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    else:
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    logger.debug(f"Wrote {type(model).__name__} to {path}", extra={"path": str(path)})
    return path


def load_schema_text(path: str | Path) -> Schema:
    """
    Load a schema file.

    Raises:
        FileNotFoundError: If the file does not exist
        DeserializationError: If the content is not a valid schema
    """
    return _load_file(Schema, path, "schema")


def write_schema_text(schema: Schema, path: str | Path) -> Path:
    """Write a schema file (parent directories are created)."""
    return _write_file(schema, path)


def load_statistics(path: str | Path) -> DatasetFeatureStatistics:
    """
    Load a statistics file.

    Raises:
        FileNotFoundError: If the file does not exist
        DeserializationError: If the content is not valid statistics
    """
    return _load_file(DatasetFeatureStatistics, path, "statistics")


def write_anomalies_text(report: AnomaliesReport, path: str | Path) -> Path:
    return _write_file(report, path)
