"""At-least-once media job queue on Redis lists.

Messages move atomically from the queue to a processing list when claimed and
are removed on ack. A per-message dequeue counter decides whether a released
message goes back to the queue or to the poison list.

Each claim is also stamped in a ``claimed`` zset. A worker that dies between
claim and ack leaves its message there; ``requeue_stale`` moves messages whose
claim is older than the visibility timeout back onto the queue.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from redis import Redis

from ..schemas import MediaJob
from .redis_client import make_key

logger = logging.getLogger("recipeshare.queue")

DEFAULT_MAX_DEQUEUE_COUNT = 5
DEFAULT_VISIBILITY_TIMEOUT = 300


@dataclass
class QueuedMessage:
    raw: str
    dequeue_count: int


class MediaJobQueue:
    def __init__(
        self,
        redis: Redis,
        name: str = "media-process",
        prefix: str = "recipeshare",
        max_dequeue_count: int = DEFAULT_MAX_DEQUEUE_COUNT,
        visibility_timeout: float = DEFAULT_VISIBILITY_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.name = name
        self.max_dequeue_count = max_dequeue_count
        self.visibility_timeout = visibility_timeout
        self.clock = clock
        self.queue_key = make_key(prefix, "queue", name)
        self.processing_key = make_key(prefix, "queue", name, "processing")
        self.claimed_key = make_key(prefix, "queue", name, "claimed")
        self.poison_key = make_key(prefix, "queue", f"{name}-poison")
        self.dequeues_key = make_key(prefix, "queue", name, "dequeues")

    def enqueue(self, job: MediaJob) -> str:
        raw = json.dumps(job.model_dump(by_alias=True))
        self.redis.lpush(self.queue_key, raw)
        logger.info(f"Enqueued media job {raw}")
        return raw

    def enqueue_raw(self, raw: str) -> None:
        self.redis.lpush(self.queue_key, raw)

    def claim(self) -> Optional[QueuedMessage]:
        raw = self.redis.lmove(self.queue_key, self.processing_key, "RIGHT", "LEFT")
        if raw is None:
            return None
        pipe = self.redis.pipeline(transaction=True)
        pipe.zadd(self.claimed_key, {raw: self.clock()})
        pipe.hincrby(self.dequeues_key, raw, 1)
        _, count = pipe.execute()
        return QueuedMessage(raw=raw, dequeue_count=int(count))

    def ack(self, message: QueuedMessage) -> None:
        pipe = self.redis.pipeline(transaction=True)
        pipe.lrem(self.processing_key, 1, message.raw)
        pipe.zrem(self.claimed_key, message.raw)
        pipe.hdel(self.dequeues_key, message.raw)
        pipe.execute()

    def release(self, message: QueuedMessage) -> bool:
        """Return a failed message to the queue; poison it once retries run out.

        Returns True when the message was requeued.
        """
        if message.dequeue_count >= self.max_dequeue_count:
            self.dead_letter(message)
            return False
        pipe = self.redis.pipeline(transaction=True)
        pipe.lrem(self.processing_key, 1, message.raw)
        pipe.zrem(self.claimed_key, message.raw)
        pipe.lpush(self.queue_key, message.raw)
        pipe.execute()
        return True

    def dead_letter(self, message: QueuedMessage) -> None:
        pipe = self.redis.pipeline(transaction=True)
        pipe.lrem(self.processing_key, 1, message.raw)
        pipe.zrem(self.claimed_key, message.raw)
        pipe.lpush(self.poison_key, message.raw)
        pipe.hdel(self.dequeues_key, message.raw)
        pipe.execute()
        logger.warning(f"Moved media job to {self.name}-poison: {message.raw}")

    def requeue_stale(self, older_than: Optional[float] = None) -> int:
        """Recover messages claimed more than ``older_than`` seconds ago.

        The abandoned claim already counted against the dequeue limit, so a
        message that has used up its retries goes to poison instead.
        Returns the number of messages recovered.
        """
        timeout = self.visibility_timeout if older_than is None else older_than
        cutoff = self.clock() - timeout
        stale = self.redis.zrangebyscore(self.claimed_key, "-inf", cutoff)

        recovered = 0
        for raw in stale:
            count = int(self.redis.hget(self.dequeues_key, raw) or 0)
            message = QueuedMessage(raw=raw, dequeue_count=count)
            logger.warning(f"Recovering media job abandoned after claim (dequeue {count}): {raw}")
            self.release(message)
            recovered += 1
        return recovered

    def depth(self) -> int:
        return int(self.redis.llen(self.queue_key))

    def in_flight(self) -> int:
        return int(self.redis.llen(self.processing_key))

    def poisoned(self) -> list[str]:
        return list(self.redis.lrange(self.poison_key, 0, -1))
