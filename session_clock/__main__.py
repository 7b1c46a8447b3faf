"""
Entry point for `python -m session_clock`.

Usage:
    python -m session_clock [--url ws://localhost:8080/ws/reflector] [--offline]
"""

import asyncio
import argparse
import logging
import signal
import sys

from .client import ReflectorClient

logger = logging.getLogger("SessionClock")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Session Clock - reflector offset estimator")
    parser.add_argument("--url", "-u", default="ws://localhost:8080/ws/reflector")
    parser.add_argument("--offline", action="store_true", help="No reflector; fixed offset")
    parser.add_argument("--stats-interval", type=float, default=5.0, help="Seconds between stats lines")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser.parse_args(argv)


async def run(argv=None):
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    print(f"URL:     {'offline' if args.offline else args.url}")

    client = ReflectorClient(url=args.url, offline=args.offline)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        if await client.connect():
            print("Connected. Estimating offset...\n")

            async def stats_printer():
                while not shutdown.is_set():
                    await asyncio.sleep(args.stats_interval)
                    zero = client.session_time.wall_clock_at_reflector_zero()
                    logger.info(f"Offset: {client.clock_offset}ms wall@zero={zero} | {client.stats}")
                    trigger = client.fetch_and_clear_reset_trigger()
                    if trigger:
                        logger.warning(f"Reset since last report: {trigger.to_dict()}")

            task = asyncio.create_task(stats_printer())
            await shutdown.wait()
            task.cancel()
        else:
            print("Connection failed")
            return 1
    finally:
        await client.close()

    return 0


def main():
    try:
        sys.exit(asyncio.run(run()))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
