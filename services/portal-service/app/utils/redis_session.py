"""
Redis Session Manager
Manages local sessions and pending OAuth flows using Redis

Uses async Redis (redis.asyncio) to avoid blocking the event loop.
"""

import json
from datetime import datetime, timezone
from typing import Optional, Dict
import redis.asyncio as aioredis
from redis.asyncio.sentinel import Sentinel
from redis.exceptions import RedisError
import structlog

from app.config import get_settings
from shared.utils.security import token_preview

logger = structlog.get_logger(__name__)

# Global async Redis client instance
_redis_client: Optional[aioredis.Redis] = None
_redis_initialized = False


async def init_redis_client():
    """Initialize async Redis client with Sentinel support"""
    global _redis_client, _redis_initialized

    if _redis_initialized and _redis_client is not None:
        return _redis_client

    settings = get_settings()

    if settings.redis_sentinel_enabled:
        # Parse comma-separated hosts if provided
        sentinel_hosts = [
            (host.strip(), settings.redis_sentinel_port)
            for host in settings.redis_sentinel_host.split(",")
        ]

        logger.info("Initializing async Redis with Sentinel",
                    hosts=sentinel_hosts, master=settings.redis_sentinel_master)

        sentinel = Sentinel(
            sentinel_hosts,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
            socket_keepalive=True,
            retry_on_timeout=True
        )

        _redis_client = sentinel.master_for(
            settings.redis_sentinel_master,
            socket_timeout=5.0,
            password=settings.redis_password or None,
            db=settings.redis_db,
            decode_responses=True,
            retry_on_timeout=True
        )
    else:
        _redis_client = aioredis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password or None,
            db=settings.redis_db,
            decode_responses=True,
            socket_keepalive=True,
            health_check_interval=30
        )

    # Test connection; a client that cannot connect is closed so its pool is not leaked
    try:
        await _redis_client.ping()
    except (RedisError, OSError):
        client, _redis_client = _redis_client, None
        await client.aclose()
        raise
    _redis_initialized = True
    logger.info("Async Redis client initialized",
                sentinel=settings.redis_sentinel_enabled)

    return _redis_client


async def get_redis_client() -> aioredis.Redis:
    """Get async Redis client instance"""
    if not _redis_initialized or _redis_client is None:
        return await init_redis_client()

    return _redis_client


async def close_redis_client():
    """Close async Redis client connection"""
    global _redis_client, _redis_initialized

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        _redis_initialized = False
        logger.info("Async Redis client closed")


class RedisSessionManager:
    """Manages sessions and OAuth flow state in Redis with automatic expiration (async)"""

    # Key prefixes
    SESSION_PREFIX = "session"
    OAUTH_FLOW_PREFIX = "oauth"

    @staticmethod
    async def _get_redis_client() -> aioredis.Redis:
        return await get_redis_client()

    @staticmethod
    def _serialize(data: Dict) -> str:
        return json.dumps(data, default=str)

    @staticmethod
    def _deserialize(data):
        if data is None:
            return None
        try:
            return json.loads(data)
        except (json.JSONDecodeError, TypeError):
            return None

    @staticmethod
    def _ttl_until(expires_at: datetime) -> int:
        return int((expires_at - datetime.now(timezone.utc)).total_seconds())

    @staticmethod
    async def create_session(
        session_token: str,
        expires_at: datetime,
        session_data: Dict
    ) -> bool:
        """
        Create a new session in Redis (async)

        Args:
            session_token: Unique session token
            expires_at: Session expiration datetime
            session_data: Session payload (user and hosted tokens)

        Returns:
            bool: Success status
        """
        ttl = RedisSessionManager._ttl_until(expires_at)
        if ttl <= 0:
            logger.error("Invalid TTL for session", ttl=ttl)
            return False

        try:
            redis_client = await RedisSessionManager._get_redis_client()
            key = f"{RedisSessionManager.SESSION_PREFIX}:{session_token}"
            success = await redis_client.setex(key, ttl, RedisSessionManager._serialize(session_data))

            if success:
                logger.info("Session created", user_id=session_data.get('user_id'), ttl=ttl)
            else:
                logger.error("Failed to create session", user_id=session_data.get('user_id'))

            return bool(success)

        except RedisError as e:
            logger.error("Error creating session", error=str(e))
            return False

    @staticmethod
    async def get_session(session_token: str) -> Optional[Dict]:
        """
        Get session data from Redis (async)

        Args:
            session_token: Session token

        Returns:
            dict: Session data or None if not found/expired
        """
        try:
            redis_client = await RedisSessionManager._get_redis_client()
            key = f"{RedisSessionManager.SESSION_PREFIX}:{session_token}"
            raw = await redis_client.get(key)

            if raw:
                return RedisSessionManager._deserialize(raw)

            logger.debug("Session not found or expired", token=token_preview(session_token))
            return None

        except RedisError as e:
            logger.error("Error retrieving session", error=str(e))
            return None

    @staticmethod
    async def update_session(session_token: str, session_data: Dict) -> bool:
        """
        Replace session payload, keeping the remaining TTL

        Args:
            session_token: Session token
            session_data: New session payload

        Returns:
            bool: Success status (False if the session no longer exists)
        """
        try:
            redis_client = await RedisSessionManager._get_redis_client()
            key = f"{RedisSessionManager.SESSION_PREFIX}:{session_token}"
            success = await redis_client.set(
                key,
                RedisSessionManager._serialize(session_data),
                keepttl=True,
                xx=True
            )
            return bool(success)

        except RedisError as e:
            logger.error("Error updating session", error=str(e))
            return False

    @staticmethod
    async def delete_session(session_token: str) -> bool:
        """
        Delete session from Redis (sign out) - async

        Args:
            session_token: Session token to delete

        Returns:
            bool: True if a session was deleted
        """
        try:
            redis_client = await RedisSessionManager._get_redis_client()
            key = f"{RedisSessionManager.SESSION_PREFIX}:{session_token}"
            deleted = await redis_client.delete(key)

            if deleted > 0:
                logger.info("Session deleted", token=token_preview(session_token))
                return True

            logger.warning("Session not found for deletion", token=token_preview(session_token))
            return False

        except RedisError as e:
            logger.error("Error deleting session", error=str(e))
            return False

    @staticmethod
    async def create_oauth_flow(flow_id: str, flow_data: Dict, ttl_seconds: int) -> bool:
        """
        Store a pending OAuth flow (PKCE verifier and post-login path)

        Args:
            flow_id: Flow identifier carried by the browser cookie
            flow_data: Flow payload
            ttl_seconds: Time allowed to complete the provider round trip

        Returns:
            bool: Success status
        """
        try:
            redis_client = await RedisSessionManager._get_redis_client()
            key = f"{RedisSessionManager.OAUTH_FLOW_PREFIX}:{flow_id}"
            payload = dict(flow_data, created_at=datetime.now(timezone.utc).isoformat())
            success = await redis_client.setex(key, ttl_seconds, RedisSessionManager._serialize(payload))
            return bool(success)

        except RedisError as e:
            logger.error("Error creating OAuth flow", error=str(e))
            return False

    @staticmethod
    async def pop_oauth_flow(flow_id: str) -> Optional[Dict]:
        """
        Fetch and delete a pending OAuth flow (single use)

        Args:
            flow_id: Flow identifier

        Returns:
            dict: Flow data or None if not found/expired
        """
        try:
            redis_client = await RedisSessionManager._get_redis_client()
            key = f"{RedisSessionManager.OAUTH_FLOW_PREFIX}:{flow_id}"
            raw = await redis_client.getdel(key)
            if raw is None:
                logger.info("OAuth flow not found or expired", flow=token_preview(flow_id))
                return None
            return RedisSessionManager._deserialize(raw)

        except RedisError as e:
            logger.error("Error reading OAuth flow", error=str(e))
            return None

    @staticmethod
    async def ping() -> bool:
        """Check Redis connectivity"""
        try:
            redis_client = await RedisSessionManager._get_redis_client()
            return bool(await redis_client.ping())
        except (RedisError, OSError) as e:
            logger.error("Redis ping failed", error=str(e))
            return False
