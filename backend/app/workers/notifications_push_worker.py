import time

from app.core.config import Settings, settings as default_settings
from app.core.errors import OutboxStoreError
from app.core.logging import get_logger, setup_logging
from app.db.session import get_db
from app.notifications.dispatcher import dispatch_with_settings
from app.notifications.outbox import SqlOutboxStore
from app.notifications.push_sender import PushClient

logger = get_logger("notifications_push_worker")


def run_batch(push_client: PushClient, settings: Settings, batch_size=None):
    with next(get_db()) as db:
        store = SqlOutboxStore(db, lease_seconds=settings.PROCESSING_LEASE_SECONDS)
        return dispatch_with_settings(store, push_client, settings, batch_size)


def main(once: bool = False, batch_size=None, settings: Settings | None = None) -> int:
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL)

    # ConfigurationError propagates: refuse to start without credentials.
    push_client = PushClient.from_settings(settings)
    logger.info("notifications_push_worker starting (once=%s)", once)

    try:
        while True:
            try:
                summary = run_batch(push_client, settings, batch_size)
            except Exception as e:
                if once:
                    if isinstance(e, OutboxStoreError):
                        logger.exception("dispatch run aborted by store error")
                        return 1
                    raise
                logger.exception("worker loop crashed; sleeping then retrying")
                time.sleep(2)
                continue

            if once:
                logger.info("processed batch; exiting (once)")
                return 0

            if not summary.claimed:
                time.sleep(settings.NOTIFICATIONS_POLL_SECONDS)
    finally:
        push_client.close()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser()
    parser.add_argument("--once", action="store_true")
    parser.add_argument("--batch-size", type=int, default=None)
    args = parser.parse_args()

    raise SystemExit(main(once=args.once, batch_size=args.batch_size))
