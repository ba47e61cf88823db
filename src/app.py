"""Application entry point for notifilter.

`run` is the foreground process: it owns the rules, keeps the privileged
helper alive and turns queued matches into critical alerts. `helper` is the
privileged process the foreground spawns.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from art import tprint

import settings
from adapters.datagram_bus import DatagramBus
from adapters.desktop_notifier import DesktopAlertNotifier
from adapters.jsonl_source import JsonlNotificationSource
from adapters.process_control import ElevatedSpawner, OsProcessProbe
from adapters.rule_repository import JsonRuleRepository
from adapters.shared_files import SharedFileStorage
from adapters.telegram_bot_notifier import TelegramBotNotifier
from adapters.wake_scheduler import AsyncioWakeScheduler
from core.alerts import AlertSender
from core.config import DedupConfig, HelperConfig, SupervisorConfig
from core.context import ForegroundContext
from core.known_apps import grouped
from core.models import (
    ConditionField,
    FilterRule,
    GlobalFilterMode,
    LogicOperator,
    MatchType,
    RuleAction,
    RuleCondition,
)
from core.monitor import NotificationMonitor
from core.rule_store import RuleStore
from core.state import AppState
from core.supervisor import HelperSupervisor
from core.wake import BackgroundRefresh

NAME = "NOTIFILTER"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _configure_logging(helper: bool = False) -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter([os.getenv("BOT_API", "")], fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    # The daemonized helper has no terminal; it only logs to its file.
    if config.get("console", True) and not helper:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        key = "helper_path" if helper else "path"
        default = "logs/helper.log" if helper else "logs/notifilter.log"
        path = file_cfg.get(key, default)
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


# -- wiring -----------------------------------------------------------------


def _build_storage() -> SharedFileStorage:
    storage = SharedFileStorage(settings.DATA_DIR, settings.RUN_DIR)
    storage.init_dirs()
    return storage


def _build_notifier():
    # Select the notification adapter based on configuration to keep the core
    # alert sender independent from delivery details.
    if settings.NOTIFICATION_METHOD == "telegram_bot":
        bot_token = os.getenv("BOT_API")
        if not bot_token:
            raise RuntimeError("BOT_API is required when notifications.method=telegram_bot")
        if not settings.BOT_CHAT_ID:
            raise RuntimeError("notifications.bot_chat_id is required for bot notifications")
        return TelegramBotNotifier(bot_token=bot_token, chat_id=str(settings.BOT_CHAT_ID))
    if settings.NOTIFICATION_METHOD == "desktop":
        return DesktopAlertNotifier()
    raise RuntimeError("notifications.method must be 'desktop' or 'telegram_bot'")


def _helper_command() -> list[str]:
    if settings.HELPER_COMMAND:
        return settings.HELPER_COMMAND
    return [sys.executable, os.path.abspath(__file__), "helper", "--daemon"]


def _build_rule_store(storage: SharedFileStorage, bus: DatagramBus) -> RuleStore:
    rules = RuleStore(JsonRuleRepository(settings.STORE_PATH), storage, bus)
    rules.load()
    return rules


def _build_context() -> ForegroundContext:
    storage = _build_storage()
    bus = DatagramBus(settings.BUS_DIR)
    state = AppState(recent_limit=settings.RECENT_LIMIT)
    rules = _build_rule_store(storage, bus)

    sender = AlertSender(
        _build_notifier(),
        state,
        dedup_config=DedupConfig(window_seconds=settings.DEDUP_WINDOW_SECONDS),
    )
    supervisor_config = SupervisorConfig(
        health_check_interval=settings.HEALTH_CHECK_INTERVAL,
        heartbeat_freshness=settings.HEARTBEAT_FRESHNESS,
        wake_interval=settings.WAKE_INTERVAL,
    )
    supervisor = HelperSupervisor(
        shared=storage,
        spawner=ElevatedSpawner(settings.HELPER_ELEVATION, _helper_command()),
        probe=OsProcessProbe(settings.HELPER_ELEVATION),
        bus=bus,
        sender=sender,
        state=state,
        config=supervisor_config,
    )
    refresher = BackgroundRefresh(
        supervisor, AsyncioWakeScheduler(), interval=supervisor_config.wake_interval
    )
    return ForegroundContext(
        state=state,
        bus=bus,
        rules=rules,
        sender=sender,
        supervisor=supervisor,
        refresher=refresher,
    )


async def _wait_for_signal() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)
    await stop.wait()


# -- commands ---------------------------------------------------------------


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)
    logger.info("Starting notifilter")

    context = _build_context()

    async def _main() -> None:
        standard_ok, critical_ok = await context.sender.check_authorization()
        if not standard_ok:
            logger.warning("Alerts are not authorized; matches will fail to deliver")
        elif not critical_ok:
            logger.warning("Critical alerts are not authorized; alerts may be silenced")
        await context.start()
        logger.info("Watching for matched notifications...")
        try:
            await _wait_for_signal()
        finally:
            await context.shutdown()
            logger.info(
                "Stopped; %s alerts delivered this session", context.state.matched_count
            )

    asyncio.run(_main())


def _helper(daemon: bool) -> None:
    if not daemon:
        _print_banner()
    _configure_logging(helper=daemon)
    logger = logging.getLogger(__name__)

    storage = _build_storage()
    bus = DatagramBus(settings.BUS_DIR)
    monitor = NotificationMonitor(
        shared=storage,
        bus=bus,
        source=JsonlNotificationSource(settings.SOURCE_PATH),
        config=HelperConfig(
            heartbeat_interval=settings.HELPER_HEARTBEAT_INTERVAL,
            scan_interval=settings.HELPER_SCAN_INTERVAL,
        ),
    )

    async def _main() -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, monitor.request_exit)
        try:
            await monitor.run()
        finally:
            bus.close()

    logger.info("Helper starting (pid %s)", os.getpid())
    asyncio.run(_main())


def _stop() -> None:
    _configure_logging()
    context = _build_context()
    asyncio.run(context.supervisor.stop())
    print("Stop requested.")


def _status() -> None:
    storage = _build_storage()
    context = _build_context()
    health = context.supervisor.health()
    heartbeat_age = storage.heartbeat_age(time.time())
    authorized, critical = asyncio.run(context.sender.check_authorization())
    print(f"Helper:        {health.value}")
    print(f"Helper pid:    {storage.read_pid() or '-'}")
    print(f"Heartbeat age: {'-' if heartbeat_age is None else f'{heartbeat_age:.0f}s'}")
    print(f"Mode:          {context.rules.mode.value}")
    enabled = sum(1 for rule in context.rules.rules if rule.is_enabled)
    print(f"Rules:         {enabled} enabled / {len(context.rules.rules)} total")
    print(f"Queued:        {len(storage.read_matches())}")
    print(f"Alerts:        {'ok' if authorized else 'unavailable'}"
          f" (critical {'ok' if critical else 'unavailable'})")


def _test_alert() -> None:
    _configure_logging()
    context = _build_context()

    async def _main() -> None:
        outcome = context.sender.send_test_alert()
        await context.sender.wait_idle()
        print(f"Test alert {outcome.value}; delivered={context.state.matched_count}")

    asyncio.run(_main())


def _resolve_rule(store: RuleStore, ref: str) -> FilterRule:
    matches = [
        rule for rule in store.rules
        if rule.id == ref or rule.id.lower().startswith(ref.lower()) or rule.name == ref
    ]
    if len(matches) != 1:
        raise SystemExit(f"No unique rule matches {ref!r}")
    return matches[0]


def _rules(args: argparse.Namespace) -> None:
    store = _build_rule_store(_build_storage(), DatagramBus(settings.BUS_DIR))

    if args.rules_command == "list":
        print(f"Mode: {store.mode.value}")
        for index, rule in enumerate(store.rules):
            flag = "on " if rule.is_enabled else "off"
            joiner = f" {rule.logic_operator.value.upper()} "
            conditions = joiner.join(
                f"{c.field.value} {c.match_type.value} {c.value!r}" for c in rule.conditions
            )
            print(
                f"{index:>2}. [{flag}] {rule.id[:8]} p={rule.priority} "
                f"{rule.action.value:<6} {rule.name}: {conditions or '(no conditions)'}"
            )
    elif args.rules_command == "add":
        conditions = tuple(
            RuleCondition(
                field=ConditionField(field),
                match_type=MatchType(match),
                value=value,
                is_case_sensitive=args.case_sensitive,
            )
            for field, match, value in args.when
        )
        rule = FilterRule(
            name=args.name,
            action=RuleAction(args.action),
            conditions=conditions,
            logic_operator=LogicOperator.OR if args.any else LogicOperator.AND,
            priority=args.priority,
        )
        store.add(rule)
        print(f"Added rule {rule.id}")
    elif args.rules_command == "toggle":
        rule = store.toggle(_resolve_rule(store, args.rule).id)
        print(f"{rule.name}: {'enabled' if rule.is_enabled else 'disabled'}")
    elif args.rules_command == "delete":
        rule = _resolve_rule(store, args.rule)
        store.delete(rule.id)
        print(f"Deleted {rule.name}")
    elif args.rules_command == "move":
        try:
            store.move(args.source, args.destination)
        except IndexError as exc:
            raise SystemExit(str(exc)) from exc
        print("Rules reordered")
    elif args.rules_command == "export":
        text = store.export()
        if args.file:
            Path(args.file).write_text(text + "\n", encoding="utf-8")
        else:
            print(text)
    elif args.rules_command == "import":
        text = Path(args.file).read_text(encoding="utf-8")
        if not store.import_rules(text):
            raise SystemExit(f"{args.file} is not a valid rules export")
        print(f"Imported rules; {len(store.rules)} total")


def _apps() -> None:
    for category, apps in grouped().items():
        print(f"{category}:")
        for app in apps:
            print(f"  {app.name:<12} {app.bundle_id}")


def _mode(args: argparse.Namespace) -> None:
    store = _build_rule_store(_build_storage(), DatagramBus(settings.BUS_DIR))
    if args.mode:
        store.set_mode(GlobalFilterMode(args.mode))
    print(store.mode.value)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="notifilter")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the foreground watcher")
    helper_parser = subparsers.add_parser("helper", help="Run the privileged helper")
    helper_parser.add_argument("--daemon", action="store_true", help="Log to the helper log file")
    subparsers.add_parser("stop", help="Stop the helper")
    subparsers.add_parser("status", help="Show helper health and rule summary")
    subparsers.add_parser("test-alert", help="Send a test critical alert")

    rules_parser = subparsers.add_parser("rules", help="Edit filter rules")
    rules_sub = rules_parser.add_subparsers(dest="rules_command", required=True)
    rules_sub.add_parser("list", help="List rules in store order")
    add_parser = rules_sub.add_parser("add", help="Add a rule")
    add_parser.add_argument("name")
    add_parser.add_argument(
        "--when",
        nargs=3,
        action="append",
        default=[],
        metavar=("FIELD", "MATCH", "VALUE"),
        help="Condition, e.g. --when app equals com.spam.app (repeatable)",
    )
    add_parser.add_argument("--action", choices=[a.value for a in RuleAction], default="notify")
    add_parser.add_argument("--any", action="store_true", help="Match if ANY condition matches")
    add_parser.add_argument("--priority", type=int, default=100)
    add_parser.add_argument("--case-sensitive", action="store_true")
    toggle_parser = rules_sub.add_parser("toggle", help="Enable/disable a rule")
    toggle_parser.add_argument("rule", help="Rule id (prefix) or name")
    delete_parser = rules_sub.add_parser("delete", help="Delete a rule")
    delete_parser.add_argument("rule", help="Rule id (prefix) or name")
    move_parser = rules_sub.add_parser("move", help="Move a rule and renumber priorities")
    move_parser.add_argument("source", type=int)
    move_parser.add_argument("destination", type=int)
    export_parser = rules_sub.add_parser("export", help="Export rules as JSON")
    export_parser.add_argument("file", nargs="?")
    import_parser = rules_sub.add_parser("import", help="Append rules from a JSON export")
    import_parser.add_argument("file")

    subparsers.add_parser("apps", help="List known apps by category")

    mode_parser = subparsers.add_parser("mode", help="Show or set the global filter mode")
    mode_parser.add_argument("mode", nargs="?", choices=[m.value for m in GlobalFilterMode])

    args = parser.parse_args(argv)
    if args.command == "helper":
        _helper(args.daemon)
        return
    if args.command == "stop":
        _stop()
        return
    if args.command == "status":
        _status()
        return
    if args.command == "test-alert":
        _test_alert()
        return
    if args.command == "rules":
        _rules(args)
        return
    if args.command == "apps":
        _apps()
        return
    if args.command == "mode":
        _mode(args)
        return
    _run()


if __name__ == "__main__":
    main()
