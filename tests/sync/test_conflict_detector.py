"""Tests for version conflict detection."""

from dataclasses import dataclass, replace

from ledgersync.sync.conflict_detector import ConflictDetector, detect_conflict
from ledgersync.sync.models import ConflictRecord, Match, SyncRecord, VersionedRecord


def _stored(version=3, **fields):
    return SyncRecord(
        entity_type="supplier",
        server_id=12,
        version=version,
        fields=fields or {"name": "Acme", "metadata": {"zone": "A"}},
    )


class TestConflictDetector:
    """Tests for ConflictDetector.detect."""

    def test_matching_version(self):
        """Test equal versions allow the write."""
        result = ConflictDetector().detect(_stored(version=3), 3)

        assert isinstance(result, Match)
        assert result.version == 3

    def test_stale_client_version(self):
        """Test an older client version is a conflict."""
        result = ConflictDetector().detect(
            _stored(version=3), 2, client_data={"name": "Acme Ltd"}, local_id="L1"
        )

        assert isinstance(result, ConflictRecord)
        assert result.server_id == 12
        assert result.local_id == "L1"
        assert result.local_version == 2
        assert result.server_version == 3
        assert result.server_data["name"] == "Acme"
        assert result.server_data["version"] == 3
        assert result.client_data == {"name": "Acme Ltd"}

    def test_client_ahead_of_server(self):
        """Test a newer client version is also a conflict."""
        result = ConflictDetector().detect(_stored(version=3), 5)
        assert isinstance(result, ConflictRecord)
        assert result.local_version == 5

    def test_detection_does_not_share_payloads(self):
        """Test the conflict carries copies of both payloads."""
        stored = _stored(version=2)
        client = {"metadata": {"zone": "B"}}

        result = ConflictDetector().detect(stored, 1, client_data=client)
        result.server_data["metadata"]["zone"] = "Z"
        result.client_data["metadata"]["zone"] = "Z"

        assert stored.fields["metadata"]["zone"] == "A"
        assert client["metadata"]["zone"] == "B"

    def test_convenience_function(self):
        """Test detect_conflict wraps the detector."""
        assert isinstance(detect_conflict(_stored(version=1), 1), Match)
        assert isinstance(detect_conflict(_stored(version=2), 1), ConflictRecord)

    def test_any_versioned_record_is_accepted(self):
        """Test detection only needs the versioned record shape."""

        @dataclass(frozen=True)
        class Ticket:
            server_id: int
            version: int
            title: str

            def with_version(self, version):
                return replace(self, version=version)

            def to_dict(self):
                return {"id": self.server_id, "version": self.version, "title": self.title}

        ticket = Ticket(server_id=40, version=7, title="Late delivery")
        assert isinstance(ticket, VersionedRecord)

        assert isinstance(ConflictDetector().detect(ticket, 7), Match)
        conflict = ConflictDetector().detect(ticket, 6, local_id="T1")
        assert conflict.server_id == 40
        assert conflict.server_version == 7
        assert conflict.server_data == {"id": 40, "version": 7, "title": "Late delivery"}
