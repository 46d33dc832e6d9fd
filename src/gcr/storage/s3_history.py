"""Coverage history stored as a single JSON document in S3.

The document maps branch names to coverage snapshots::

    {"main": {"backend": 85.2, "frontend": 91.0}, "develop": {...}}
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from gcr.models.coverage import HistoryDocument

logger = logging.getLogger(__name__)

_JSON_SUFFIX = ".json"


class HistoryStoreError(Exception):
    """Raised when the history document cannot be written."""


def object_key(folder_name: str, file_name: str) -> str:
    """Build ``{folder}/{file}``, appending ``.json`` unless already present."""
    if not file_name.endswith(_JSON_SUFFIX):
        file_name = f"{file_name}{_JSON_SUFFIX}"
    return f"{folder_name}/{file_name}"


def merge_branch(
    document: Mapping[str, Mapping[str, float]],
    branch: str,
    snapshot: Mapping[str, float],
) -> HistoryDocument:
    """Return a copy of *document* with *snapshot* recorded for *branch*.

    Other branches are copied unchanged. Types already stored for *branch*
    but absent from *snapshot* are kept, so parallel jobs reporting
    different types do not erase each other.
    """
    merged: HistoryDocument = {name: dict(values) for name, values in document.items()}
    merged[branch] = {**merged.get(branch, {}), **snapshot}
    return merged


def _clean_document(document: Mapping[str, Any], location: str) -> HistoryDocument:
    """Keep branch entries that are objects and their numeric type values."""
    history: HistoryDocument = {}
    for branch, entry in document.items():
        if not isinstance(entry, dict):
            logger.warning("Ignoring malformed branch %r in coverage history %s", branch, location)
            continue
        snapshot: dict[str, float] = {}
        for coverage_type, value in entry.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                logger.warning(
                    "Ignoring non-numeric %s coverage for branch %r in %s",
                    coverage_type,
                    branch,
                    location,
                )
                continue
            snapshot[coverage_type] = float(value)
        history[branch] = snapshot
    return history


class S3HistoryStore:
    """Reads and writes the coverage history document."""

    def __init__(
        self,
        bucket_name: str,
        folder_name: str,
        region: str | None = None,
        client: Any = None,
    ) -> None:
        self.bucket_name = bucket_name
        self.folder_name = folder_name
        self._client = client or boto3.client("s3", region_name=region or None)

    def object_key(self, file_name: str) -> str:
        return object_key(self.folder_name, file_name)

    def get(self, file_name: str) -> HistoryDocument:
        """Fetch the history document.

        Any failure (missing object, denied access, malformed JSON) is logged
        and yields an empty document. Branch entries that are not objects, and
        non-numeric values inside them, are dropped.
        """
        key = self.object_key(file_name)
        location = f"s3://{self.bucket_name}/{key}"
        try:
            response = self._client.get_object(Bucket=self.bucket_name, Key=key)
            document = json.loads(response["Body"].read())
        except (BotoCoreError, ClientError) as exc:
            logger.warning("Could not fetch coverage history %s: %s", location, exc)
            return {}
        except (ValueError, KeyError) as exc:
            logger.warning("Coverage history %s is not valid JSON: %s", location, exc)
            return {}

        if not isinstance(document, dict):
            logger.warning("Coverage history %s is not a JSON object", location)
            return {}

        history = _clean_document(document, location)
        logger.debug("Fetched coverage history for %d branch(es)", len(history))
        return history

    def put(self, file_name: str, document: Mapping[str, Any]) -> None:
        """Write the history document.

        Raises:
            HistoryStoreError: If the upload fails.
        """
        key = self.object_key(file_name)
        try:
            self._client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=json.dumps(document).encode("utf-8"),
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as exc:
            raise HistoryStoreError(
                f"Failed to write coverage history to s3://{self.bucket_name}/{key}: {exc}"
            ) from exc

        logger.info("Coverage history written to s3://%s/%s", self.bucket_name, key)

    def record(self, file_name: str, branch: str, snapshot: Mapping[str, float]) -> HistoryDocument:
        """Read, merge *snapshot* for *branch*, and write back once.

        Raises:
            HistoryStoreError: If the upload fails.
        """
        document = merge_branch(self.get(file_name), branch, snapshot)
        self.put(file_name, document)
        return document
