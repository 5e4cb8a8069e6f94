"""
Per-session prediction history stores.

Holds the most recent predictions for each checkout session so the
enhanced predictor can smooth scores on trend and consistency. The history
is a lossy cache: entries are bounded per session and never durable.

Two backends:
- InMemoryHistoryStore: process-local, for single-instance deployments
- RedisHistoryStore: TTL-bounded Redis lists shared across instances
"""

import threading
from abc import ABC, abstractmethod
from collections import OrderedDict, deque
from typing import Deque, List, Optional

import redis
import structlog
from redis.exceptions import RedisError

from boltx.core.models.features import AbandonmentPrediction
from boltx.core.utils.metrics import HISTORY_STORE_ERRORS

logger = structlog.get_logger(__name__)


class PredictionHistoryStore(ABC):
    """Bounded per-session prediction history."""

    def __init__(self, limit: int = 10):
        self.limit = limit

    @abstractmethod
    def get(self, session_id: str) -> List[AbandonmentPrediction]:
        """Return the stored predictions for a session, oldest first."""
        pass

    @abstractmethod
    def append(self, session_id: str, prediction: AbandonmentPrediction) -> None:
        """Append a prediction, evicting the oldest beyond the limit."""
        pass

    @abstractmethod
    def clear(self, session_id: str) -> None:
        pass


class InMemoryHistoryStore(PredictionHistoryStore):
    """Process-local history keyed by session id.

    The number of tracked sessions can be capped; the least recently
    written session is dropped first when the cap is reached.
    """

    def __init__(self, limit: int = 10, max_sessions: Optional[int] = None):
        super().__init__(limit)
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, Deque[AbandonmentPrediction]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, session_id: str) -> List[AbandonmentPrediction]:
        with self._lock:
            return list(self._sessions.get(session_id, ()))

    def append(self, session_id: str, prediction: AbandonmentPrediction) -> None:
        with self._lock:
            history = self._sessions.get(session_id)
            if history is None:
                history = deque(maxlen=self.limit)
                self._sessions[session_id] = history
            history.append(prediction)
            self._sessions.move_to_end(session_id)

            if self.max_sessions and len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.debug("Evicted session history", session_id=evicted)

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)


class RedisHistoryStore(PredictionHistoryStore):
    """History kept in Redis lists with a TTL.

    Redis failures degrade to an empty history so scoring still succeeds
    without smoothing.
    """

    def __init__(self,
                 redis_client: redis.Redis,
                 limit: int = 10,
                 ttl_seconds: int = 3600,
                 key_prefix: str = "boltx:history"):
        super().__init__(limit)
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    @classmethod
    def from_config(cls,
                    host: str,
                    port: int,
                    db: int = 0,
                    password: Optional[str] = None,
                    limit: int = 10,
                    ttl_seconds: int = 3600,
                    socket_timeout: int = 5) -> "RedisHistoryStore":
        client = redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
            decode_responses=True
        )
        logger.info("Redis history store configured", host=host, port=port, db=db)
        return cls(client, limit=limit, ttl_seconds=ttl_seconds)

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}:{session_id}"

    def get(self, session_id: str) -> List[AbandonmentPrediction]:
        try:
            raw_items = self.redis_client.lrange(self._key(session_id), 0, -1)
        except RedisError as e:
            HISTORY_STORE_ERRORS.labels(operation="get").inc()
            logger.warning("Failed to read session history", session_id=session_id, error=str(e))
            return []

        history = []
        for item in raw_items:
            try:
                history.append(AbandonmentPrediction.model_validate_json(item))
            except ValueError as e:
                logger.warning("Skipping malformed history entry", session_id=session_id, error=str(e))
        return history

    def append(self, session_id: str, prediction: AbandonmentPrediction) -> None:
        key = self._key(session_id)
        try:
            pipe = self.redis_client.pipeline()
            pipe.rpush(key, prediction.model_dump_json())
            pipe.ltrim(key, -self.limit, -1)
            pipe.expire(key, self.ttl_seconds)
            pipe.execute()
        except RedisError as e:
            HISTORY_STORE_ERRORS.labels(operation="append").inc()
            logger.warning("Failed to write session history", session_id=session_id, error=str(e))

    def clear(self, session_id: str) -> None:
        try:
            self.redis_client.delete(self._key(session_id))
        except RedisError as e:
            HISTORY_STORE_ERRORS.labels(operation="clear").inc()
            logger.warning("Failed to clear session history", session_id=session_id, error=str(e))

    def health_check(self) -> bool:
        try:
            return bool(self.redis_client.ping())
        except RedisError:
            return False
