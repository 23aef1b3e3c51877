#!/usr/bin/env python3
"""
Payment event consumer.
Run this script to drain the payment lifecycle event stream.
"""
import signal

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def main() -> None:
    import structlog

    from core.logging import configure_logging
    from services.event_channel import RedisStreamChannel, create_redis_client
    from services.event_consumer import PaymentEventConsumer

    configure_logging()
    logger = structlog.get_logger("consumer_worker")

    redis_client = create_redis_client()
    consumer = PaymentEventConsumer(RedisStreamChannel.from_settings(redis_client))

    def _shutdown(signum, frame):
        logger.info("event_consumer_shutdown_signal", signal=signum)
        consumer.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        consumer.run()
    finally:
        redis_client.close()


if __name__ == "__main__":
    main()
