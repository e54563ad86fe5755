"""
Tests for Serialization

Tests wire decoding errors and JSON/YAML schema files.
"""

import json

import pytest

from statsguard.validation.anomalies import AnomaliesReport
from statsguard.validation.errors import DeserializationError
from statsguard.validation.schema import (
    Feature,
    FeatureType,
    FloatDomain,
    Schema,
    StringDomain,
)
from statsguard.validation.serialization import (
    load_schema_text,
    load_statistics,
    parse_schema,
    parse_validation_config,
    serialize_schema,
    write_anomalies_text,
    write_schema_text,
)


@pytest.fixture
def sample_schema():
    return Schema(
        string_domains=[StringDomain(name="colors", values=["red", "blue"])],
        features=[
            Feature(name="fare", type=FeatureType.FLOAT, domain=FloatDomain(min=0.0, max=99.5)),
            Feature(name="color", type=FeatureType.BYTES, domain_ref="colors"),
        ],
    )


def test_serialized_schema_omits_unset_fields(sample_schema):
    """Test the wire format leaves out fields that are not set."""
    data = json.loads(serialize_schema(sample_schema))

    fare = data["features"][0]
    assert fare["domain"] == {"kind": "float", "min": 0.0, "max": 99.5}
    assert "presence" not in fare


def test_parse_schema_discriminates_domains():
    """Test the domain kind selects the domain model."""
    schema = parse_schema(
        b'{"features": [{"name": "age", "type": "INT", "domain": {"kind": "int", "max": 9}}]}'
    )

    assert schema.get_feature("age").domain.max == 9


def test_parse_rejects_unknown_fields():
    """Test misspelled fields are decoding errors, not silently dropped."""
    with pytest.raises(DeserializationError, match="schema"):
        parse_schema(b'{"features": [{"name": "age", "type": "INT", "presense": {}}]}')


def test_parse_rejects_non_text():
    """Test inputs that are not bytes or str are rejected."""
    with pytest.raises(DeserializationError, match="bytes or str"):
        parse_schema({"features": []})


def test_parse_validation_config():
    """Test validation settings decode with defaults."""
    config = parse_validation_config('{"new_features_are_warnings": true}')

    assert config.new_features_are_warnings
    assert config.max_string_domain_size == 100


@pytest.mark.parametrize("filename", ["schema.json", "schema.yaml"])
def test_schema_file_roundtrip(tmp_path, sample_schema, filename):
    """Test schema files in JSON and YAML."""
    path = write_schema_text(sample_schema, tmp_path / "nested" / filename)

    assert path.exists()
    assert load_schema_text(path) == sample_schema


def test_load_schema_yaml_written_by_hand(tmp_path):
    """Test hand-written YAML schemas."""
    path = tmp_path / "schema.yml"
    path.write_text(
        "features:\n"
        "  - name: payment\n"
        "    type: BYTES\n"
        "    domain:\n"
        "      kind: string\n"
        "      values: [cash, card]\n"
    )

    schema = load_schema_text(path)

    assert schema.get_feature("payment").domain.values == ["cash", "card"]


def test_load_bad_yaml(tmp_path):
    """Test unparseable YAML raises DeserializationError."""
    path = tmp_path / "schema.yaml"
    path.write_text("features: [unclosed\n")

    with pytest.raises(DeserializationError, match="YAML"):
        load_schema_text(path)


def test_load_missing_file(tmp_path):
    """Test a missing file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        load_statistics(tmp_path / "missing.json")


def test_write_anomalies(tmp_path):
    """Test anomaly reports are written as JSON."""
    path = write_anomalies_text(AnomaliesReport(environment="SERVING"), tmp_path / "out.json")

    assert json.loads(path.read_text()) == {
        "anomalies": [],
        "drift_skew_info": [],
        "environment": "SERVING",
    }
