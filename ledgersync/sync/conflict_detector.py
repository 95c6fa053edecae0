"""Version-based conflict detection."""

import copy
from typing import Optional

from .models import ConflictRecord, DetectionResult, Match, VersionedRecord


class ConflictDetector:
    """Compares a client-submitted version against the stored version.

    Stateless and side-effect free: the stored record is only read, and the
    payloads placed on a ConflictRecord are copies.
    """

    def detect(
        self,
        stored: VersionedRecord,
        client_version: int,
        client_data: Optional[dict] = None,
        local_id: Optional[str] = None,
    ) -> DetectionResult:
        """Check whether a write based on ``client_version`` may proceed.

        Args:
            stored: Freshly fetched stored record.
            client_version: Version the client last saw.
            client_data: Payload the client wants to write.
            local_id: Client correlation token, echoed on conflict.

        Returns:
            Match if the versions are equal, otherwise a ConflictRecord.
        """
        if stored.version == client_version:
            return Match(version=stored.version)

        return ConflictRecord(
            server_id=stored.server_id,
            local_id=local_id,
            local_version=client_version,
            server_version=stored.version,
            server_data=stored.to_dict(),
            client_data=copy.deepcopy(client_data or {}),
        )


def detect_conflict(
    stored: VersionedRecord,
    client_version: int,
    client_data: Optional[dict] = None,
) -> DetectionResult:
    """Convenience function for one-off detection."""
    return ConflictDetector().detect(stored, client_version, client_data)
