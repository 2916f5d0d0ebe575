"""Media worker.

Polls the media queue and runs each job through the media pipeline:
1. Claims a message (moves it to the processing list)
2. Parses {recipeId, blobName} and processes it
3. Acks on success
4. Invalid or stale jobs (InvalidJobError / NotFoundError) go to the poison list
5. Any other failure releases the message for redelivery until the dequeue
   limit is reached
6. Each poll first requeues messages whose claim outlived the visibility
   timeout (the worker holding them died)

Usage:
    python -m recipeshare.worker
"""

import logging
import sys
import time
import uuid

from .deps import Services, build_services
from .errors import InvalidJobError, NotFoundError
from .infra.job_queue import MediaJobQueue, QueuedMessage
from .services.media_pipeline import MediaProcessor, parse_media_job
from .settings import settings

logger = logging.getLogger("recipeshare.worker")

WORKER_ID = f"worker-{uuid.uuid4().hex[:8]}"


def handle_message(queue: MediaJobQueue, processor: MediaProcessor, message: QueuedMessage) -> str:
    """Process one claimed message. Returns "done", "poisoned" or "retry"."""
    job = parse_media_job(message.raw)
    try:
        processor.process(job)
    except (InvalidJobError, NotFoundError) as e:
        logger.warning(f"[{WORKER_ID}] Dropping media job {message.raw}: {e}")
        queue.dead_letter(message)
        return "poisoned"
    except Exception:
        logger.exception(f"[{WORKER_ID}] Media job failed (dequeue {message.dequeue_count}): {message.raw}")
        return "retry" if queue.release(message) else "poisoned"

    queue.ack(message)
    return "done"


def drain(queue: MediaJobQueue, processor: MediaProcessor) -> int:
    """Keep claiming until the queue is empty. Returns messages handled.

    Messages abandoned by a dead worker are put back on the queue first.
    """
    recovered = queue.requeue_stale()
    if recovered:
        logger.info(f"[{WORKER_ID}] Requeued {recovered} stale media job(s)")

    handled = 0
    while True:
        message = queue.claim()
        if message is None:
            return handled
        handle_message(queue, processor, message)
        handled += 1


def run(services: Services, poll_interval: int) -> None:
    processor = services.media_processor()
    while True:
        try:
            drain(services.media_queue, processor)
        except Exception as e:
            logger.error(f"[{WORKER_ID}] Loop error: {e}")
            time.sleep(1)

        time.sleep(poll_interval)


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    logger.info(f"[{WORKER_ID}] Starting (Poll: {settings.poll_interval}s, queue: {settings.media_queue_name})")

    services = build_services(settings)
    try:
        run(services, settings.poll_interval)
    finally:
        services.close()


if __name__ == "__main__":
    main()
