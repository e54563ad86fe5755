"""
Tests for Schema Store

Tests GCS-backed schema storage with versioning.
"""

import json
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gcs_exceptions

from statsguard.shared.config import get_config
from statsguard.validation.errors import DeserializationError, InvalidArgumentError
from statsguard.validation.schema import Feature, FeatureType, IntDomain, Schema
from statsguard.validation.schema_store import SchemaStore


@pytest.fixture
def mock_bucket(mock_gcs_client):
    """Bucket returned by the mocked client."""
    bucket = MagicMock()
    mock_gcs_client.bucket.return_value = bucket
    return bucket


@pytest.fixture
def sample_schema():
    return Schema(
        features=[
            Feature(name="age", type=FeatureType.INT, domain=IntDomain(min=0, max=120)),
            Feature(name="city", type=FeatureType.BYTES),
        ]
    )


def _stored(schema: Schema, version: str = "v1") -> bytes:
    document = {
        "metadata": {
            "dataset": "taxi",
            "version": version,
            "created_at": "2024-01-01T12:00:00+00:00",
            "created_by": "test",
            "description": "Test schema",
            "num_features": len(schema.features),
        },
        "schema": schema.model_dump(mode="json", exclude_none=True),
    }
    return json.dumps(document).encode("utf-8")


def test_schema_store_initialization(mock_bucket, mock_gcs_client):
    """Test SchemaStore initialization."""
    config = get_config("dev")
    store = SchemaStore(config)

    assert store.config == config
    assert store.bucket_name == config.storage.buckets.main
    mock_gcs_client.bucket.assert_called_once_with(config.storage.buckets.main)


def test_register_schema(mock_bucket, sample_schema):
    """Test registering uploads the version and latest."""
    store = SchemaStore(get_config("dev"))

    version = store.register_schema("taxi", sample_schema, description="Test schema")

    assert version.startswith("v")
    paths = [c.args[0] for c in mock_bucket.blob.call_args_list]
    assert paths == [f"schemas/taxi/{version}.json", "schemas/taxi/latest.json"]

    uploaded = json.loads(mock_bucket.blob.return_value.upload_from_string.call_args.args[0])
    assert uploaded["metadata"]["num_features"] == 2
    assert uploaded["metadata"]["description"] == "Test schema"
    assert uploaded["schema"]["features"][0]["name"] == "age"


def test_register_malformed_schema(mock_bucket):
    """Test malformed schemas are rejected before upload."""
    store = SchemaStore(get_config("dev"))
    schema = Schema(
        features=[
            Feature(name="age", type=FeatureType.INT),
            Feature(name="age", type=FeatureType.INT),
        ]
    )

    with pytest.raises(InvalidArgumentError, match="Duplicate feature names"):
        store.register_schema("taxi", schema)

    mock_bucket.blob.return_value.upload_from_string.assert_not_called()


def test_get_schema(mock_bucket, sample_schema):
    """Test downloading the latest schema."""
    mock_bucket.blob.return_value.download_as_bytes.return_value = _stored(sample_schema)
    store = SchemaStore(get_config("dev"))

    schema = store.get_schema("taxi")

    assert schema == sample_schema
    mock_bucket.blob.assert_called_with("schemas/taxi/latest.json")


def test_get_schema_version(mock_bucket, sample_schema):
    """Test downloading a specific version."""
    mock_bucket.blob.return_value.download_as_bytes.return_value = _stored(sample_schema)
    store = SchemaStore(get_config("dev"))

    store.get_schema("taxi", version="v20240101_120000")

    mock_bucket.blob.assert_called_with("schemas/taxi/v20240101_120000.json")


def test_get_schema_not_found(mock_bucket):
    """Test a missing schema raises FileNotFoundError."""
    mock_bucket.blob.return_value.download_as_bytes.side_effect = gcs_exceptions.NotFound("gone")
    store = SchemaStore(get_config("dev"))

    with pytest.raises(FileNotFoundError, match="taxi"):
        store.get_schema("taxi")


def test_get_schema_corrupt_document(mock_bucket):
    """Test a stored document that is not JSON raises DeserializationError."""
    mock_bucket.blob.return_value.download_as_bytes.return_value = b"{not json"
    store = SchemaStore(get_config("dev"))

    with pytest.raises(DeserializationError):
        store.get_schema("taxi")


def test_get_schema_metadata(mock_bucket, sample_schema):
    """Test reading stored metadata."""
    mock_bucket.blob.return_value.download_as_bytes.return_value = _stored(sample_schema, "v7")
    store = SchemaStore(get_config("dev"))

    metadata = store.get_schema_metadata("taxi")

    assert metadata.version == "v7"
    assert metadata.num_features == 2
    assert metadata.created_at.year == 2024


def test_list_versions(mock_gcs_client, mock_bucket):
    """Test versions are listed newest first, without latest."""
    names = [
        "schemas/taxi/v20240101_000000.json",
        "schemas/taxi/latest.json",
        "schemas/taxi/v20240301_000000.json",
    ]
    blobs = []
    for name in names:
        blob = MagicMock()
        blob.name = name
        blobs.append(blob)
    mock_gcs_client.list_blobs.return_value = blobs
    store = SchemaStore(get_config("dev"))

    versions = store.list_versions("taxi")

    assert versions == ["v20240301_000000", "v20240101_000000"]


def test_schema_exists(mock_bucket):
    """Test existence checks use the latest path by default."""
    mock_bucket.blob.return_value.exists.return_value = False
    store = SchemaStore(get_config("dev"))

    assert not store.schema_exists("taxi")
    mock_bucket.blob.assert_called_with("schemas/taxi/latest.json")
