"""Versioned, encrypted artifact store with noncurrent-version expiry.

Writes never overwrite: each put appends a version and the last writer
becomes current.  There is no locking.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

logger = logging.getLogger("crossdeploy.runtime")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ArtifactEncryptionError(Exception):
    """Raised when an object would be written under a key other than the store's."""


class ArtifactNotFoundError(LookupError):
    """Raised when an artifact (or one of its versions) does not exist."""


@dataclass
class ObjectVersion:
    key: str
    version_id: str
    data: bytes
    kms_key_arn: str
    written_at: datetime
    noncurrent_since: datetime | None = None

    @property
    def is_current(self) -> bool:
        return self.noncurrent_since is None


class VersionedArtifactStore:
    """In-memory model of the pipeline's artifact bucket."""

    def __init__(
        self,
        bucket: str,
        kms_key_arn: str,
        retention_days: int,
        clock: Clock | None = None,
    ) -> None:
        self.bucket = bucket
        self.kms_key_arn = kms_key_arn
        self.retention = timedelta(days=retention_days)
        self._clock = clock or _utcnow
        self._objects: dict[str, list[ObjectVersion]] = {}
        self._sequence = 0

    def put(self, key: str, data: bytes, *, kms_key_arn: str) -> str:
        """Append a new current version of *key* and return its version id."""
        if kms_key_arn != self.kms_key_arn:
            raise ArtifactEncryptionError(
                f"Object '{key}' must be encrypted with {self.kms_key_arn}, not {kms_key_arn}"
            )
        now = self._clock()
        versions = self._objects.setdefault(key, [])
        if versions and versions[-1].is_current:
            versions[-1].noncurrent_since = now
        self._sequence += 1
        version_id = f"v{self._sequence:06d}"
        versions.append(
            ObjectVersion(
                key=key,
                version_id=version_id,
                data=bytes(data),
                kms_key_arn=kms_key_arn,
                written_at=now,
            )
        )
        logger.info("Stored s3://%s/%s (%s)", self.bucket, key, version_id)
        return version_id

    def get(self, key: str, version_id: str | None = None) -> bytes:
        return self.head(key, version_id).data

    def head(self, key: str, version_id: str | None = None) -> ObjectVersion:
        versions = self._objects.get(key)
        if not versions:
            raise ArtifactNotFoundError(f"No artifact at s3://{self.bucket}/{key}")
        if version_id is None:
            return versions[-1]
        for version in versions:
            if version.version_id == version_id:
                return version
        raise ArtifactNotFoundError(f"No version {version_id} of s3://{self.bucket}/{key}")

    def exists(self, key: str) -> bool:
        return bool(self._objects.get(key))

    def versions(self, key: str) -> list[ObjectVersion]:
        return list(self._objects.get(key, []))

    def keys(self) -> list[str]:
        return sorted(k for k, v in self._objects.items() if v)

    def expire_noncurrent(self, now: datetime | None = None) -> int:
        """Purge versions noncurrent for longer than the retention window; return the count."""
        now = now or self._clock()
        purged = 0
        for key, versions in self._objects.items():
            kept = [
                v
                for v in versions
                if v.noncurrent_since is None or now - v.noncurrent_since <= self.retention
            ]
            purged += len(versions) - len(kept)
            self._objects[key] = kept
        if purged:
            logger.info("Expired %d noncurrent version(s) in %s", purged, self.bucket)
        return purged
