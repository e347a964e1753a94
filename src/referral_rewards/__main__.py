"""Command line entry point.

    python -m referral_rewards run        # one reconciliation run
    python -m referral_rewards schedule   # cron loop, optional health server
    python -m referral_rewards summary    # ledger totals per processing date
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path

import uvicorn
from loguru import logger

from referral_rewards import __version__
from referral_rewards.api.health import create_app
from referral_rewards.core.logging import configure_logging
from referral_rewards.core.settings import Settings, get_settings
from referral_rewards.db.session import create_engine, create_session_factory
from referral_rewards.jobs.referral_rewards import run_referral_rewards
from referral_rewards.observability.tracing import configure_tracing
from referral_rewards.scheduling import JobDefinition, JobScheduler
from referral_rewards.services.notifications import RunAlertNotifier
from referral_rewards.services.referrals import ReferralLedger


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="referral-rewards", description="Referral rewards reconciliation")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Run the pipeline once and exit.")
    subparsers.add_parser("schedule", help="Run the pipeline on the configured cron schedule.")
    summary_parser = subparsers.add_parser("summary", help="Print ledger totals per processing date.")
    summary_parser.add_argument("--limit", type=int, default=30, help="Number of processing dates to show.")
    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "run"
    return args


async def _run_once(settings: Settings) -> int:
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    notifier = RunAlertNotifier(settings)
    try:
        await run_referral_rewards(session_factory=session_factory, settings=settings, notifier=notifier)
    except Exception as exc:
        logger.exception("Referral rewards run failed", error=str(exc))
        await notifier.notify_run_failure(exc)
        if settings.is_production:
            return 1
        raise
    finally:
        await engine.dispose()
    return 0


def _resolve_schedule_path(raw: str) -> Path:
    path = Path(raw)
    if path.is_absolute():
        return path
    return Path.cwd() / path


async def _serve(settings: Settings) -> int:
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    notifier = RunAlertNotifier(settings)

    async def _alert(job: JobDefinition, exc: BaseException) -> None:
        await notifier.notify_run_failure(f"{job.id}: {exc}")

    scheduler = JobScheduler(
        session_factory=session_factory,
        settings=settings,
        config_path=_resolve_schedule_path(settings.schedule_path),
        on_failure=_alert,
    )
    scheduler.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    stop_task = asyncio.create_task(stop_event.wait())
    server: uvicorn.Server | None = None
    server_task: asyncio.Task | None = None
    if settings.health_port:
        app = create_app(scheduler=scheduler, service_name=settings.service_name)
        configure_tracing(
            service_name=settings.service_name,
            service_version=__version__,
            environment=settings.environment,
            app=app,
        )
        server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=settings.health_port, log_config=None))
        server_task = asyncio.create_task(server.serve())
        logger.info("Health server listening", port=settings.health_port)

    try:
        waiters = [stop_task] if server_task is None else [stop_task, server_task]
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        logger.info("Scheduler shutting down")
        stop_task.cancel()
        if server is not None and server_task is not None:
            server.should_exit = True
            await asyncio.gather(server_task, return_exceptions=True)
    finally:
        await scheduler.stop()
        await engine.dispose()
    return 0


async def _print_summary(settings: Settings, limit: int) -> int:
    engine = create_engine(settings)
    try:
        ledger = ReferralLedger(create_session_factory(engine), settings)
        rows = await ledger.summary_by_date(limit=limit)
    finally:
        await engine.dispose()
    for row in rows:
        sys.stdout.write(json.dumps(row, default=str) + "\n")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(
        service_name=settings.service_name,
        environment=settings.environment,
        version=__version__,
        level=settings.log_level,
    )
    configure_tracing(
        service_name=settings.service_name,
        service_version=__version__,
        environment=settings.environment,
    )
    logger.info("Referral rewards processor starting", command=args.command, version=__version__)

    if args.command == "schedule":
        return asyncio.run(_serve(settings))
    if args.command == "summary":
        return asyncio.run(_print_summary(settings, args.limit))
    return asyncio.run(_run_once(settings))


if __name__ == "__main__":
    sys.exit(main())
