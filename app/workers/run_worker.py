from __future__ import annotations

import argparse
import asyncio

from arq.worker import run_worker

from app.workers.arq_worker import WorkerSettings


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the library background worker.")
    parser.add_argument("--burst", action="store_true", help="process queued jobs then exit")
    args = parser.parse_args(argv)

    # arq calls asyncio.get_event_loop() during init, which no longer creates one implicitly.
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    run_worker(WorkerSettings, burst=args.burst)


if __name__ == "__main__":
    main()
