"""CLI entrypoint for the release engine: scheduler loop, single tick, store status."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal

from config import Settings, get_settings
from intelligence.completion import LLMCompletionService
from orchestrator import ReleaseWorkflow, TickScheduler
from pipeline.notification import TelegramChannel
from sources import FredProvider, HttpWebFetcher, TradingEconomicsProvider
from storage import ReleaseStore
from utils.logger import setup_logger

logger = logging.getLogger(__name__)


def build_workflow(settings: Settings) -> ReleaseWorkflow:
    engine = settings.release_engine
    web_fetcher = HttpWebFetcher(
        timeout_sec=settings.general.request_timeout,
        user_agent=settings.general.user_agent,
    )
    reports = TradingEconomicsProvider(web_fetcher=web_fetcher)
    calendar = FredProvider() if engine.calendar_provider == "fred" else reports
    delivery = TelegramChannel() if engine.delivery_target else None
    return ReleaseWorkflow(
        engine,
        store=ReleaseStore(engine.store_path),
        calendar=calendar,
        reports=reports,
        web_fetcher=web_fetcher,
        completion=LLMCompletionService(),
        delivery=delivery,
    )


async def _run_forever(workflow: ReleaseWorkflow, settings: Settings) -> None:
    engine = settings.release_engine
    scheduler = TickScheduler(workflow.tick, interval_seconds=engine.poll_seconds, enabled=engine.enabled)
    if not engine.enabled:
        logger.info("release engine disabled (set RELEASE_ENGINE_ENABLED=1 to enable)")
        return
    logger.info(
        "release engine poll=%ss indicator=%s country=%s state_dir=%s",
        engine.poll_seconds, engine.indicator, engine.country, engine.state_dir,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))

    scheduler.start()
    try:
        await stop_event.wait()
    finally:
        await scheduler.stop()
        if workflow.completion is not None:
            await workflow.completion.aclose()


async def _tick_once(workflow: ReleaseWorkflow) -> None:
    try:
        summary = await workflow.tick()
    finally:
        if workflow.completion is not None:
            await workflow.completion.aclose()
    print(json.dumps(summary, ensure_ascii=False))


async def _status(store: ReleaseStore) -> None:
    doc = await store.read()
    print(json.dumps(doc.to_json_dict(), ensure_ascii=False, indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(description="US CPI release engine")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", default="")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="run the tick scheduler until SIGINT/SIGTERM")
    sub.add_parser("tick", help="run one discovery + advancement tick")
    sub.add_parser("status", help="print the persisted store as JSON")

    args = parser.parse_args()
    setup_logger(level=getattr(logging, str(args.log_level).upper(), logging.INFO), log_file=args.log_file or None)
    settings = get_settings()

    if args.command == "status":
        asyncio.run(_status(ReleaseStore(settings.release_engine.store_path)))
        return

    workflow = build_workflow(settings)
    if args.command == "tick":
        asyncio.run(_tick_once(workflow))
        return

    asyncio.run(_run_forever(workflow, settings))


if __name__ == "__main__":
    main()
