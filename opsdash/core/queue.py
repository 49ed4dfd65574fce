"""Job queue listing and per-user aggregation."""

from __future__ import annotations

from datetime import datetime, timezone

from ..rows import RowQuery
from ..types import QueueCounts, QueueStats, QueueUserGroup, RowSource
from .entity_cache import EntityCache


async def fetch_queue(rows: RowSource) -> list[dict]:
    result = await rows.execute(RowQuery("queues").select("*").order_by("created_at", desc=True))
    return result.rows


def _new_group(user_id: str, entities: EntityCache | None) -> QueueUserGroup:
    user = entities.get_user(user_id) if entities is not None else None
    return QueueUserGroup(
        user_id=user_id,
        user_name=user.name if user and user.name else user_id,
        user_email=user.email if user else "",
    )


def group_queue_by_user(items: list[dict], entities: EntityCache | None = None) -> list[QueueUserGroup]:
    """Group queue items by ``user_id``, largest groups first.

    ``active`` and ``completed`` are counted as such; any other status,
    including a missing one, counts as pending.
    """
    groups: dict[str, QueueUserGroup] = {}
    for item in items:
        user_id = str(item.get("user_id") or "")
        group = groups.get(user_id)
        if group is None:
            group = groups[user_id] = _new_group(user_id, entities)
        group.items.append(item)
        group.stats.add(item.get("status"))
    return sorted(groups.values(), key=lambda g: g.stats.total, reverse=True)


def queue_stats(
    items: list[dict],
    entities: EntityCache | None = None,
    now: datetime | None = None,
) -> QueueStats:
    by_user = {g.user_id: g for g in group_queue_by_user(items, entities)}
    return QueueStats(
        total=len(items),
        by_user=by_user,
        last_fetch_time=now or datetime.now(timezone.utc),
    )


def counts_to_dict(counts: QueueCounts) -> dict:
    return {
        "pending": counts.pending,
        "active": counts.active,
        "completed": counts.completed,
        "total": counts.total,
    }


def group_to_dict(group: QueueUserGroup) -> dict:
    return {
        "userId": group.user_id,
        "userName": group.user_name,
        "userEmail": group.user_email,
        "items": group.items,
        "stats": counts_to_dict(group.stats),
    }
