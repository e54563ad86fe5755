"""
StatsGuard - Schema Store

GCS-backed schema storage with versioning. Keeps every schema a pipeline
has validated against, so a later run can update the latest one or
reproduce an older validation:
- Upload schemas to GCS with versioning
- Download schemas by version or get latest
- List stored versions

Usage:
    store = SchemaStore(config)

    # Store an inferred schema
    version = store.register_schema("taxi", schema)

    # Get latest schema
    schema = store.get_schema("taxi")

    # Get specific version
    schema = store.get_schema("taxi", version="v20240101_120000")
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from statsguard.shared.config import Settings, get_config
from statsguard.validation.errors import DeserializationError
from statsguard.validation.schema import Schema, check_schema
from statsguard.validation.serialization import parse_schema

logger = logging.getLogger(__name__)


@dataclass
class SchemaMetadata:
    """Stored schema metadata."""

    dataset: str
    version: str
    created_at: datetime
    created_by: str
    description: str | None = None
    num_features: int = 0


class SchemaStore:
    """
    GCS-backed schema store with versioning.

    Schemas are stored in GCS at:
        gs://{bucket}/{schemas}/{dataset}/{version}.json
        gs://{bucket}/{schemas}/{dataset}/latest.json (copy of the newest)
    """

    def __init__(self, config: Settings | None = None):
        """
        Initialize schema store.

        Args:
            config: Configuration object (uses default if not provided)
        """
        self.config = config or get_config()
        self.bucket_name = self.config.storage.buckets.main
        self.schemas_path = self.config.storage.paths.schemas

        if self.config.storage.emulator.enabled:
            # fake-gcs-server for local development
            self.client = storage.Client(
                project="test-project",
                client_options={"api_endpoint": self.config.storage.emulator.host},
            )
        else:
            self.client = storage.Client(project=self.config.gcp_project_id)

        self.bucket = self.client.bucket(self.bucket_name)

    def register_schema(
        self,
        dataset: str,
        schema: Schema,
        version: str | None = None,
        description: str | None = None,
        created_by: str = "system",
    ) -> str:
        """
        Store a schema in GCS.

        Args:
            dataset: Dataset name
            schema: Schema to store (checked before upload)
            version: Version string (timestamp-based if not provided)
            description: Schema description
            created_by: Creator identifier

        Returns:
            Version string of the stored schema

        Raises:
            InvalidArgumentError: If the schema is malformed
        """
        check_schema(schema)

        if version is None:
            version = self._generate_version()

        metadata = SchemaMetadata(
            dataset=dataset,
            version=version,
            created_at=datetime.now(UTC),
            created_by=created_by,
            description=description,
            num_features=sum(1 for _ in schema.iter_features()),
        )

        document = {
            "metadata": {
                "dataset": metadata.dataset,
                "version": metadata.version,
                "created_at": metadata.created_at.isoformat(),
                "created_by": metadata.created_by,
                "description": metadata.description,
                "num_features": metadata.num_features,
            },
            "schema": schema.model_dump(mode="json", exclude_none=True),
        }

        self._upload_json(self._path(dataset, version), document)
        self._upload_json(self._path(dataset, "latest"), document)

        logger.info(
            f"Registered schema for {dataset} version {version}",
            extra={"dataset": dataset, "version": version},
        )

        return version

    def get_schema(self, dataset: str, version: str | None = None) -> Schema:
        """
        Get a schema from the store.

        Args:
            dataset: Dataset name
            version: Specific version (uses latest if not provided)

        Returns:
            Stored Schema

        Raises:
            FileNotFoundError: If the schema doesn't exist
            DeserializationError: If the stored document is not a valid schema
        """
        document = self._get_document(dataset, version)
        if "schema" not in document:
            raise DeserializationError(f"Stored document for {dataset} has no schema")
        schema = parse_schema(json.dumps(document["schema"]))
        logger.debug(
            f"Retrieved schema for {dataset}",
            extra={"dataset": dataset, "version": version},
        )
        return schema

    def get_schema_metadata(self, dataset: str, version: str | None = None) -> SchemaMetadata:
        """Get stored metadata without parsing the schema."""
        meta = self._get_document(dataset, version)["metadata"]
        return SchemaMetadata(
            dataset=meta["dataset"],
            version=meta["version"],
            created_at=datetime.fromisoformat(meta["created_at"]),
            created_by=meta["created_by"],
            description=meta.get("description"),
            num_features=meta.get("num_features", 0),
        )

    def list_versions(self, dataset: str) -> list[str]:
        """
        List all stored versions for a dataset.

        Returns:
            List of version strings, sorted newest first
        """
        prefix = f"{self.schemas_path}/{dataset}/"
        blobs = self.client.list_blobs(self.bucket_name, prefix=prefix)

        versions = []
        for blob in blobs:
            filename = Path(blob.name).name
            if filename != "latest.json" and filename.endswith(".json"):
                versions.append(filename.removesuffix(".json"))

        # Timestamp versions (vYYYYMMDD_HHMMSS) sort chronologically
        versions.sort(reverse=True)
        return versions

    def schema_exists(self, dataset: str, version: str | None = None) -> bool:
        """Check if a schema exists."""
        return self.bucket.blob(self._path(dataset, version or "latest")).exists()

    # =========================================================================
    # Private Methods
    # =========================================================================

    def _path(self, dataset: str, version: str) -> str:
        return f"{self.schemas_path}/{dataset}/{version}.json"

    def _get_document(self, dataset: str, version: str | None) -> dict[str, Any]:
        path = self._path(dataset, version or "latest")
        try:
            return self._download_json(path)
        except gcs_exceptions.NotFound as e:
            raise FileNotFoundError(f"Schema not found: {dataset} version={version}") from e

    def _generate_version(self) -> str:
        """Generate a version string based on timestamp."""
        return datetime.now(UTC).strftime("v%Y%m%d_%H%M%S")

    def _upload_json(self, path: str, data: dict[str, Any]) -> None:
        blob = self.bucket.blob(path)
        blob.upload_from_string(
            json.dumps(data, indent=2, default=str),
            content_type="application/json",
        )

    def _download_json(self, path: str) -> dict[str, Any]:
        blob = self.bucket.blob(path)
        content = blob.download_as_bytes()
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise DeserializationError(f"Stored document at {path} is not valid JSON") from e
