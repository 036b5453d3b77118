"""Run the maintenance job loop outside the web process.

Run: python scripts/run_scheduler.py [--interval 30] [--once] [--job NAME]

Starts every registered job (or only the named ones) and calls
``JobRegistry.run_pending`` every ``--interval`` seconds until interrupted.
The web process drives its own jobs; this runner is for a dedicated worker
and turns the in-process driver off.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Ensure project root (parent of scripts/) is on sys.path when run as a file.
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storefront import create_app  # noqa: E402

log = logging.getLogger("scheduler")


async def _loop(registry, interval: float, once: bool) -> None:
    while True:
        ran = await registry.run_pending()
        if ran:
            log.info("Ran jobs: %s", ", ".join(ran))
        if once:
            return
        await asyncio.sleep(interval)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--interval", type=float, default=30.0, help="seconds between due-job checks")
    parser.add_argument("--once", action="store_true", help="check once and exit")
    parser.add_argument("--job", action="append", default=[], help="start only this job (repeatable)")
    args = parser.parse_args(argv)

    app = create_app({"scheduler_tick_seconds": 0})
    registry = app.job_registry  # type: ignore[attr-defined]
    for name in args.job or registry.names():
        registry.start(name)
    log.info("Scheduler status: %s", registry.status())
    try:
        asyncio.run(_loop(registry, args.interval, args.once))
    except KeyboardInterrupt:
        log.info("Scheduler stopped")
    registry.stop_all()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
