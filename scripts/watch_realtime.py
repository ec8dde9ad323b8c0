"""Watch SpaceMarket realtime namespaces and print every event as a JSON line."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

BACKEND_DIR = Path(__file__).resolve().parents[1] / "backend"
if BACKEND_DIR.exists() and str(BACKEND_DIR) not in sys.path:  # pragma: no branch - source checkout only
    sys.path.insert(0, str(BACKEND_DIR))

from app.config import Settings, get_settings  # noqa: E402
from app.logging_config import configure_logging  # noqa: E402
from spacemarket.realtime import (  # noqa: E402
    ConnectionState,
    EventKind,
    FailureReason,
    create_broker_dashboard_feed,
    create_landlord_dashboard_feed,
    create_messaging_client,
    create_tenant_dashboard_feed,
)
from spacemarket.realtime.events import DASHBOARD_EVENTS, MESSAGING_EVENTS  # noqa: E402


logger = logging.getLogger("spacemarket.watch")

FEED_FACTORIES = {
    "tenant": create_tenant_dashboard_feed,
    "landlord": create_landlord_dashboard_feed,
    "broker": create_broker_dashboard_feed,
}


def _emit_line(kind: str, payload: Any) -> None:
    if hasattr(payload, "model_dump"):
        payload = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    record = {
        "received_at": datetime.now(timezone.utc).isoformat(),
        "event": kind,
        "payload": payload,
    }
    print(json.dumps(record, sort_keys=True, default=str), flush=True)


def _printer(kind: EventKind) -> Callable[[Any], None]:
    def _print(payload: Any) -> None:
        _emit_line(kind.value, payload)

    return _print


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):  # pragma: no cover - platform specific
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signum, stop.set)


async def _wait(stop: asyncio.Event, duration: float) -> None:
    if duration > 0:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=duration)
    else:
        await stop.wait()


async def watch_dashboard(settings: Settings, args: argparse.Namespace, stop: asyncio.Event) -> None:
    handlers = {kind: _printer(kind) for kind in DASHBOARD_EVENTS}

    def on_poll_error(exc: BaseException) -> None:
        _emit_line("polling:error", {"error": str(exc) or type(exc).__name__})

    feed = FEED_FACTORIES[args.source](handlers, settings, on_poll_error=on_poll_error)
    await feed.start()
    logger.info("watching %s (fallback source: %s)", settings.dashboard_namespace, args.source)
    try:
        await _wait(stop, args.duration)
    finally:
        status = feed.status.value
        await feed.stop()
        logger.info("dashboard feed stopped (last status: %s)", status)


async def watch_messaging(settings: Settings, args: argparse.Namespace, stop: asyncio.Event) -> None:
    client = create_messaging_client(settings)
    for kind in MESSAGING_EVENTS:
        client.subscribe(kind, _printer(kind))

    def on_failure(reason: FailureReason) -> None:
        logger.error("messaging connection gave up: %s", reason.value)
        stop.set()

    await client.connect(on_failure)
    try:
        if args.conversation:
            while client.state in (ConnectionState.CONNECTING, ConnectionState.RECONNECTING):
                if stop.is_set():
                    return
                await asyncio.sleep(0.1)
            if client.is_connected():
                await client.join_conversation(args.conversation)
        await _wait(stop, args.duration)
    finally:
        if client.active_conversation:
            await client.leave_conversation(client.active_conversation)
        await client.disconnect()


async def run_watch(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.token:
        overrides["session_token"] = args.token
    if args.ws_url is not None:
        overrides["ws_base_url"] = args.ws_url.rstrip("/")
    if args.api_url:
        overrides["api_base_url"] = args.api_url.rstrip("/")
    settings = get_settings().model_copy(update=overrides)
    if not settings.session_token:
        logger.warning("no session token configured; the server will likely reject the connection")

    stop = asyncio.Event()
    _install_signal_handlers(stop)
    if args.namespace == "dashboard":
        await watch_dashboard(settings, args, stop)
    else:
        await watch_messaging(settings, args, stop)
    return 0


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("namespace", choices=["dashboard", "messaging"], help="Namespace to watch")
    parser.add_argument("--token", default=None, help="Session token sent as the session cookie")
    parser.add_argument("--ws-url", default=None, help="Realtime origin; empty means same as --api-url")
    parser.add_argument("--api-url", default=None, help="REST API origin used for snapshot polling")
    parser.add_argument(
        "--source",
        choices=sorted(FEED_FACTORIES),
        default="tenant",
        help="Snapshot endpoint polled when the dashboard socket fails",
    )
    parser.add_argument("--conversation", default=None, help="Conversation id to join (messaging only)")
    parser.add_argument(
        "--duration",
        type=float,
        default=0.0,
        help="Stop after this many seconds; 0 watches until interrupted",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log verbosity level (defaults to LOG_LEVEL from settings)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    configure_logging(args.log_level)
    try:
        return asyncio.run(run_watch(args))
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        logger.warning("interrupted by user")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
