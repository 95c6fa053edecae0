"""Pull-based catch-up sync: what changed since a watermark."""

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Optional

import structlog

from .entities import entity_types, get_entity_definition
from .errors import ValidationFailureError
from .models import ChangeSet, SyncConfig, is_valid_server_id

if TYPE_CHECKING:
    from ledgersync.storage.base import RecordStore

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChangeFeed:
    """Answers "what changed since timestamp T" for client catch-up."""

    def __init__(
        self,
        store: "RecordStore",
        config: Optional[SyncConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.config = config or SyncConfig()
        self._clock = clock or _utcnow
        self.log = logger.bind(component="change_feed")

    async def changes_since(
        self,
        since: Optional[datetime] = None,
        entity_type: Optional[str] = None,
        after_id: Optional[int] = None,
    ) -> ChangeSet:
        """Fetch records past the ``(since, after_id)`` cursor.

        Args:
            since: Client watermark. None returns everything up to the page cap.
                Naive timestamps are taken as UTC.
            entity_type: Restrict to one entity type; None means all of them.
            after_id: Id half of the cursor from the previous page's
                ``next_after_id``. Ignored without ``since``.

        Returns:
            ChangeSet whose ``as_of`` is read after the query completes. While
            ``has_more`` is set, ``next_since``/``next_after_id`` point at the
            last returned record, so records sharing its timestamp are not
            skipped. Once the feed is drained ``next_since`` trails ``as_of``
            by the configured lag.
        """
        types = [get_entity_definition(entity_type).name] if entity_type else entity_types()
        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        if since is None:
            after_id = None
        elif after_id is not None and not is_valid_server_id(after_id):
            raise ValidationFailureError(f"Invalid after_id: {after_id}")

        cap = self.config.change_feed_page_cap
        records = await self.store.changed_since(types, since, cap + 1, after_id=after_id)
        as_of = self._clock()

        has_more = len(records) > cap
        records = records[:cap]
        if has_more:
            next_since = records[-1].updated_at
            next_after_id = records[-1].server_id
        else:
            next_since = as_of - timedelta(seconds=self.config.change_feed_lag_seconds)
            next_after_id = None

        self.log.debug(
            "Change feed served",
            since=since.isoformat() if since else None,
            after_id=after_id,
            entity_types=types,
            records=len(records),
            has_more=has_more,
        )
        return ChangeSet(
            records=records,
            as_of=as_of,
            has_more=has_more,
            next_since=next_since,
            next_after_id=next_after_id,
        )
