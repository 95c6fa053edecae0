"""
Audit emitter for sync mutations.

Every create, update and conflict resolution made by the sync engine is
handed here with before/after snapshots of the record. Events are always
written to the structured log and, when Supabase is configured, persisted
to its audit_logs table. Querying the audit trail happens elsewhere.
"""

from typing import Any, Optional
from uuid import uuid4

import structlog

from ledgersync.services.supabase_client import SupabaseClient, get_supabase_client
from ledgersync.sync.models import AuditAction

logger = structlog.get_logger(__name__)

AUDIT_TABLE = "audit_logs"


class AuditLogger:
    """
    Audit emitter backed by the structured log and Supabase.

    Usage:
        audit = AuditLogger()

        await audit.log(
            action=AuditAction.UPDATE,
            entity_type="supplier",
            entity_id=42,
            old_values={"name": "Acme", "version": 3},
            new_values={"name": "Acme Ltd", "version": 4},
            actor="user-7",
            description="Supplier updated via sync",
        )
    """

    def __init__(self, supabase: Optional[SupabaseClient] = None, table: str = AUDIT_TABLE):
        self._supabase = supabase
        self.table = table

    def _get_supabase(self) -> SupabaseClient:
        """Get Supabase client lazily."""
        if self._supabase is None:
            self._supabase = get_supabase_client()
        return self._supabase

    async def log(
        self,
        action: AuditAction | str,
        entity_type: str,
        entity_id: Optional[int],
        old_values: Optional[dict],
        new_values: Optional[dict],
        actor: Optional[str],
        description: str = "",
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[str]:
        """
        Record one audit event.

        Returns the audit log ID if it was persisted, None otherwise. Never
        raises: the mutation being audited has already been committed.
        """
        action_str = action.value if isinstance(action, AuditAction) else action
        audit_id = str(uuid4())

        logger.info(
            "Audit event",
            audit_id=audit_id,
            action=action_str,
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            description=description,
        )

        try:
            supabase = self._get_supabase()
            if not supabase.is_configured:
                logger.debug("Supabase not configured, audit event kept in log only")
                return None

            result = await supabase.insert(
                self.table,
                {
                    "id": audit_id,
                    "user_id": str(actor) if actor is not None else None,
                    "action": action_str,
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "old_values": old_values,
                    "new_values": new_values,
                    "description": description,
                    "metadata": metadata or {},
                },
            )

            if result.get("error"):
                logger.error(
                    "Failed to write audit log",
                    error=result["error"],
                    action=action_str,
                )
                return None

            return audit_id

        except Exception as e:
            # Don't let audit logging failures break the application
            logger.error("Audit logging error", error=str(e), action=action_str)
            return None

    async def close(self) -> None:
        if self._supabase is not None:
            await self._supabase.close()


# Global singleton instance
_audit_logger: AuditLogger | None = None


def get_audit_logger() -> AuditLogger:
    """Get the global audit logger instance."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger
