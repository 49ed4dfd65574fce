"""Read-through cache of organizations, users and agents keyed by id."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from ..rows import RowQuery
from ..types import AgentInfo, OrgInfo, RowSource, UserInfo

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DURATION = timedelta(hours=1)
DEFAULT_FETCH_LIMIT = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _with_id(rows: list, table: str) -> list[dict]:
    kept = [r for r in rows if isinstance(r, dict) and r.get("id") is not None]
    if len(kept) != len(rows):
        logger.warning("Skipping %d %s rows without an id", len(rows) - len(kept), table)
    return kept


class EntityCache:
    """Id lookups for the dashboard's filter lists and display names.

    All three tables are fetched concurrently and the maps are swapped in
    together. If any fetch fails the previous maps stay in place and the
    fetch time is not advanced, so the next ``initialize()`` retries.
    """

    def __init__(
        self,
        rows: RowSource,
        *,
        cache_duration: timedelta = DEFAULT_CACHE_DURATION,
        fetch_limit: int = DEFAULT_FETCH_LIMIT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._rows = rows
        self.cache_duration = cache_duration
        self.fetch_limit = fetch_limit
        self._clock = clock
        self._orgs: dict[str, OrgInfo] = {}
        self._users: dict[str, UserInfo] = {}
        self._agents: dict[str, AgentInfo] = {}
        self.last_fetch_time: datetime | None = None

    def is_cache_valid(self) -> bool:
        if self.last_fetch_time is None:
            return False
        return self._clock() - self.last_fetch_time < self.cache_duration

    async def initialize(self) -> None:
        if self.is_cache_valid():
            return

        try:
            orgs, users, agents = await asyncio.gather(
                self._rows.execute(RowQuery("organizations").select("id, name").limit(self.fetch_limit)),
                self._rows.execute(RowQuery("users").select("id, name, email, org_id").limit(self.fetch_limit)),
                self._rows.execute(RowQuery("agents").select("id, name, type").limit(self.fetch_limit)),
            )
            org_map = {
                str(r["id"]): OrgInfo(id=str(r["id"]), name=r.get("name") or "")
                for r in _with_id(orgs.rows, "organizations")
            }
            user_map = {
                str(r["id"]): UserInfo(
                    id=str(r["id"]),
                    name=r.get("name") or "",
                    email=r.get("email") or "",
                    org_id=str(r["org_id"]) if r.get("org_id") is not None else None,
                )
                for r in _with_id(users.rows, "users")
            }
            agent_map = {
                str(r["id"]): AgentInfo(id=str(r["id"]), name=r.get("name") or "", type=r.get("type") or "")
                for r in _with_id(agents.rows, "agents")
            }
        except Exception as e:
            logger.error("Error initializing entity cache, keeping previous data: %s", e)
            return

        self._orgs, self._users, self._agents = org_map, user_map, agent_map
        self.last_fetch_time = self._clock()
        logger.info(
            "Entity cache loaded: %d orgs, %d users, %d agents",
            len(self._orgs), len(self._users), len(self._agents),
        )

    def get_user(self, user_id: str) -> UserInfo | None:
        return self._users.get(user_id)

    def get_org(self, org_id: str) -> OrgInfo | None:
        return self._orgs.get(org_id)

    def get_agent(self, agent_id: str) -> AgentInfo | None:
        return self._agents.get(agent_id)

    def all_users(self) -> dict[str, UserInfo]:
        return dict(self._users)

    def all_orgs(self) -> dict[str, OrgInfo]:
        return dict(self._orgs)

    def all_agents(self) -> dict[str, AgentInfo]:
        return dict(self._agents)

    def users_by_org(self, org_id: str | None) -> dict[str, UserInfo]:
        if not org_id:
            return {}
        return {uid: u for uid, u in self._users.items() if u.org_id == org_id}

    def clear(self) -> None:
        self._orgs = {}
        self._users = {}
        self._agents = {}
        self.last_fetch_time = None
