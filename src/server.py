"""Protean Engine runner for the tracking domain.

Used when PROTEAN_ENV selects asynchronous event processing. The Engine:
- OutboxProcessor: polls the outbox table, publishes events to Redis Streams
- StreamSubscriptions: reads Redis Streams, invokes the board and timeline
  projectors and the challan event handler

Usage:
    PROTEAN_ENV=production python src/server.py
    PROTEAN_ENV=production python src/server.py --test-mode
"""

import argparse
import asyncio

from protean.server.engine import Engine


def _get_domain():
    from tracking.domain import tracking

    tracking.init()
    return tracking


async def run(test_mode: bool = False):
    engine = Engine(_get_domain(), test_mode=test_mode)
    await engine.run()


def main():
    parser = argparse.ArgumentParser(description="Fulfillment tracker Engine runner")
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Process pending messages once and exit",
    )
    args = parser.parse_args()

    asyncio.run(run(test_mode=args.test_mode))


if __name__ == "__main__":
    main()
