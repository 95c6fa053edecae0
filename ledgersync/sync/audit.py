"""Hand buffered audit events to the audit emitter after commit."""

from typing import Optional

import structlog

from .models import AuditEmitter, AuditEvent

logger = structlog.get_logger()


async def emit_audit_events(
    audit: Optional[AuditEmitter],
    events: list[AuditEvent],
) -> int:
    """Emit events in order, never raising.

    The mutations they describe are already committed, so an audit sink
    failure is logged and the remaining events are still attempted.

    Returns:
        Number of events the emitter accepted without raising.
    """
    if audit is None or not events:
        return 0

    emitted = 0
    for event in events:
        try:
            await audit.log(
                action=event.action,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                old_values=event.old_values,
                new_values=event.new_values,
                actor=event.actor,
                description=event.description,
                metadata=event.metadata,
            )
            emitted += 1
        except Exception as e:
            logger.error(
                "Audit emission failed",
                action=event.action.value,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                error=str(e),
            )
    return emitted
