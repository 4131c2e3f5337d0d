"""
Redis-backed session store.

Session servers write one key per live WebSocket connection:

    WsSession#<session_id> -> {"id": ..., "ownerId": ..., "hostId": <server address>}

and listen on the `drop-persistent-sessions` channel for drop commands of the
form {"<hostId>": <count>, ...}. The balancer only reads keys and publishes
commands; which sessions actually get dropped is up to each server.
"""

from __future__ import annotations

import json
import logging
from typing import List, Mapping, Optional

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from fleet_balancer.applib.errors import CollaboratorUnavailable
from fleet_balancer.applib.models import Session

logger = logging.getLogger(__name__)

COLLABORATOR = "session-store"


def create_redis(url: str, *, timeout: float) -> redis.Redis:
    return redis.from_url(
        url,
        decode_responses=True,  # store/read strings; values are JSON
        health_check_interval=30,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )


class RedisSessionStore:
    def __init__(
        self,
        client: redis.Redis,
        *,
        key_prefix: str = "WsSession",
        drop_channel: str = "drop-persistent-sessions",
        scan_count: int = 500,
    ):
        self._redis = client
        self.key_prefix = key_prefix
        self.drop_channel = drop_channel
        self.scan_count = scan_count

    def session_key(self, session_id: str) -> str:
        return f"{self.key_prefix}#{session_id}"

    async def list_sessions(self) -> List[Session]:
        try:
            keys = [key async for key in self._redis.scan_iter(match=self.session_key("*"), count=self.scan_count)]
            if not keys:
                return []
            values = await self._redis.mget(keys)
        except RedisError as exc:
            raise CollaboratorUnavailable(COLLABORATOR, f"listing sessions failed: {exc}", cause=exc) from exc

        sessions: List[Session] = []
        for key, raw in zip(keys, values):
            session = self._parse(key, raw)
            if session is not None:
                sessions.append(session)
        return sessions

    @staticmethod
    def _parse(key: str, raw: Optional[str]) -> Optional[Session]:
        if raw is None:
            # Expired between SCAN and MGET.
            return None
        try:
            return Session.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Skipping malformed session record %s: %s", key, exc.errors()[0].get("msg"))
            return None

    async def drop_sessions(self, counts: Mapping[str, int]) -> None:
        if not counts:
            return
        payload = json.dumps(dict(counts), separators=(",", ":"))
        logger.info("Publishing %s command with data: %s", self.drop_channel, payload)
        try:
            await self._redis.publish(self.drop_channel, payload)
        except RedisError as exc:
            raise CollaboratorUnavailable(COLLABORATOR, f"publishing drop command failed: {exc}", cause=exc) from exc

    async def close(self) -> None:
        await self._redis.aclose()
