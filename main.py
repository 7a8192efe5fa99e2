#!/usr/bin/env python3
"""
Auto Reply Bot - Main Entry Point
=================================

This is the main entry point for the auto responder.
It provides a command-line interface for running the bot
and managing its rules.

Usage:
    python main.py --daemon                 # Listen for SMS and reply
    python main.py --test "Hello" [SENDER]  # Run one message through the pipeline
    python main.py --status                 # Check system status
    python main.py --import-rules rules.yaml
    python main.py --cleanup [DAYS]         # Delete old messages
    python main.py --help                   # Show help
"""

import os
import sys
import argparse
import asyncio
import signal
from pathlib import Path
from typing import Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from core.config import (
    load_config,
    create_default_config,
    save_config,
    get_default_config_dir,
    Config,
    SUPPORTED_PROVIDERS,
)
from core.database import init_database, Database
from core.logging import setup_logging, get_logger
from core.exceptions import AutoReplyError
from core.state import ConnectionState, Notifier
from llm.factory import create_llm_provider, API_KEY_HINTS
from rules.clock import is_valid_zone
from rules.models import Settings
from services.dispatcher import Dispatcher
from services.fallback import GenerativeFallback
from transport.base import InboundMessage, Transport
from transport.local import LocalTransport
from transport.termux import TermuxSMSTransport

logger = get_logger("main")


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Auto Reply Bot - rule-based chat auto responder with generative fallback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --daemon                      Listen for SMS and reply
  python main.py --test "Hello" +15550001111   Test message handling
  python main.py --test "Hi all" --group       Test as a group message
  python main.py --import-rules rules.yaml     Load rules from YAML
  python main.py --list-rules                  Show stored rules
  python main.py --send +15550001111 "Hello"   Send a message
  python main.py --cleanup 7                   Delete messages older than a week
  python main.py --retention 14                Keep messages for two weeks
  python main.py --setup                       Run initial setup
        """
    )

    # Mode selection (mutually exclusive)
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--daemon",
        action="store_true",
        help="Run as background daemon (listen and auto-reply)"
    )
    mode_group.add_argument(
        "--status",
        action="store_true",
        help="Check system status"
    )
    mode_group.add_argument(
        "--test",
        nargs="+",
        metavar=("MESSAGE", "SENDER"),
        help="Test message handling (usage: --test 'Hello' [SENDER])"
    )
    mode_group.add_argument(
        "--send",
        nargs=2,
        metavar=("NUMBER", "MESSAGE"),
        help="Send a message (usage: --send +1234567890 'Hello')"
    )
    mode_group.add_argument(
        "--setup",
        action="store_true",
        help="Run initial setup wizard"
    )
    mode_group.add_argument(
        "--import-rules",
        type=str,
        metavar="PATH",
        help="Import rules from a YAML file"
    )
    mode_group.add_argument(
        "--list-rules",
        action="store_true",
        help="List stored rules in evaluation order"
    )
    mode_group.add_argument(
        "--cleanup",
        type=float,
        nargs="?",
        const=0,
        metavar="DAYS",
        help="Delete messages older than DAYS (default: the retention period)"
    )
    mode_group.add_argument(
        "--cleanup-range",
        nargs=2,
        metavar=("FROM", "TO"),
        help="Delete messages stored between two ISO dates (inclusive)"
    )
    mode_group.add_argument(
        "--retention",
        type=float,
        metavar="DAYS",
        help="Set how many days messages are kept"
    )
    mode_group.add_argument(
        "--logout",
        action="store_true",
        help="Log the transport out"
    )

    # Optional arguments
    parser.add_argument(
        "--group",
        action="store_true",
        help="With --test: treat the message as a group message"
    )
    parser.add_argument(
        "--config",
        type=str,
        metavar="PATH",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode"
    )
    parser.add_argument(
        "--provider",
        type=str,
        choices=list(SUPPORTED_PROVIDERS),
        help="LLM provider to use"
    )
    parser.add_argument(
        "--model",
        type=str,
        help="Model to use"
    )

    return parser.parse_args(argv)


def build_transport(config: Config) -> Transport:
    if config.transport.kind == "local":
        return LocalTransport()
    return TermuxSMSTransport(config.transport)


def build_dispatcher(config: Config, database: Database, transport: Transport) -> Dispatcher:
    """Wire the reply pipeline. Raises ConfigError for missing credentials."""
    provider = create_llm_provider(config)
    fallback = GenerativeFallback(provider, config.reply)
    state = ConnectionState(Notifier())
    dispatcher = Dispatcher(database, transport, fallback, state, config)
    dispatcher.attach()
    return dispatcher


def run_setup_wizard() -> None:
    """Run interactive setup wizard."""
    print("\n" + "=" * 50)
    print("Auto Reply Bot Setup Wizard")
    print("=" * 50 + "\n")

    config_dir = str(get_default_config_dir())
    print(f"Configuration directory: {config_dir}")

    config = create_default_config()
    print("✓ Created default configuration")

    # LLM provider
    print("\nLLM Provider Configuration")
    print("-" * 30)

    choices = "/".join(SUPPORTED_PROVIDERS)
    provider = input(f"Provider [{choices}] (default: gemini): ").strip().lower()
    if provider not in SUPPORTED_PROVIDERS:
        provider = "gemini"
    config.llm.provider = provider

    api_key = input(f"Enter your {provider} API key (or press Enter to skip): ").strip()
    if api_key:
        env_file = Path(config_dir) / ".env"
        with open(env_file, "a") as f:
            f.write(f"\n{API_KEY_HINTS[provider]}={api_key}\n")
        os.chmod(env_file, 0o600)
        print("✓ API key saved")

    save_config(config)
    print("\n✓ Configuration saved")

    # Bot settings
    print("\nReply Settings")
    print("-" * 30)

    database = init_database(config.database_path)
    changes = {}

    timezone_name = input(f"Timezone (default: {config.reply.default_timezone}): ").strip()
    if timezone_name:
        if is_valid_zone(timezone_name):
            changes["timezone"] = timezone_name
        else:
            print(f"  Unknown timezone {timezone_name!r}, keeping default")

    groups = input("Reply in group chats? [y/N]: ").strip().lower()
    changes["reply_to_group_chats"] = groups == "y"

    sleep = input("Sleep window, e.g. 23:00-07:00 (Enter for none): ").strip()
    if sleep and "-" in sleep:
        start, end = (part.strip() for part in sleep.split("-", 1))
        changes["sleep_start"], changes["sleep_end"] = start, end

    try:
        database.update_settings(**changes)
        print("✓ Settings saved")
    except AutoReplyError as e:
        print(f"✗ Settings not saved: {e}")
    finally:
        database.close()

    print("\n" + "=" * 50)
    print("Setup Complete!")
    print("=" * 50)
    print("\nNext steps:")
    print("  Rules:   python main.py --import-rules rules.yaml")
    print("  Test:    python main.py --test 'Hello'")
    print("  Run:     python main.py --daemon")


def run_status_check(config: Config) -> None:
    """Check and display system status."""
    print("\n" + "=" * 50)
    print("Auto Reply Bot - System Status")
    print("=" * 50 + "\n")

    database = init_database(config.database_path)

    # Transport
    print("Transport")
    print("-" * 30)
    print(f"  Kind: {config.transport.kind}")
    if config.transport.kind == "termux":
        try:
            asyncio.run(TermuxSMSTransport(config.transport).check_available())
            print("  Status: ✓ Available")
        except AutoReplyError as e:
            print(f"  Status: ✗ Unavailable ({e})")

    # LLM
    print("\nLLM Provider")
    print("-" * 30)
    print(f"  Provider: {config.llm.provider}")
    print(f"  Model: {config.llm.model}")
    print(f"  Timeout: {config.llm.request_timeout}s (hard cap {config.reply.generate_timeout}s)")
    print(f"  API Key: {'✓ Set' if config.llm.api_key else '✗ Not Set'}")

    # Settings
    print("\nSettings")
    print("-" * 30)
    settings = database.get_settings()
    if settings is None:
        print("  (defaults, never saved)")
        settings = Settings()
    print(f"  Bot: {'Enabled' if settings.bot_enabled else 'Disabled'}")
    print(f"  Personal chats: {'Yes' if settings.reply_to_personal_chats else 'No'}")
    print(f"  Group chats: {'Yes' if settings.reply_to_group_chats else 'No'}")
    if settings.sleep_start and settings.sleep_end:
        print(f"  Sleep window: {settings.sleep_start}-{settings.sleep_end}")
    print(f"  Timezone: {settings.timezone or config.reply.default_timezone}")

    # Database stats
    print("\nDatabase")
    print("-" * 30)
    stats = database.get_statistics()
    print(f"  Messages in: {stats['messages'].get('in', 0)}")
    print(f"  Messages out: {stats['messages'].get('out', 0)}")
    print(f"  Chats: {stats['chats']}")
    print(f"  Rules: {stats['rules']['enabled']} enabled, {stats['rules']['disabled']} disabled")

    print("\n" + "=" * 50 + "\n")
    database.close()


def run_import_rules(config: Config, path: str) -> None:
    database = init_database(config.database_path)
    try:
        imported = database.import_rules(path)
    finally:
        database.close()
    print(f"✓ Imported {len(imported)} rule(s) from {path}")


def run_list_rules(config: Config) -> None:
    """Print rules in the order the matcher sees them."""
    database = init_database(config.database_path)
    try:
        rules = database.list_rules()
    finally:
        database.close()

    if not rules:
        print("No rules stored.")
        return

    for rule in rules:
        state = "on " if rule.enabled else "off"
        print(f"[{state}] #{rule.id} p{rule.priority} {rule.name} -> {rule.response.type}")
        for condition in rule.conditions:
            print(f"        {condition.type} {condition.operator} {condition.value!r}")


async def _run_test_message(config: Config, message: str, sender: str, is_group: bool) -> None:
    database = init_database(config.database_path)
    transport = LocalTransport()
    dispatcher = build_dispatcher(config, database, transport)

    try:
        await dispatcher.start()
        result = await dispatcher.handle(InboundMessage(
            sender=sender,
            recipient=transport.address,
            body=message,
            is_group=is_group,
        ))
    finally:
        await dispatcher.stop()
        database.close()

    print("\nResult:")
    if not result.gate:
        print(f"  Suppressed: {result.gate.reason.value}")
        return

    print(f"  Outcome: {result.plan.outcome.value}")
    if result.plan.rule_name:
        print(f"  Rule: {result.plan.rule_name} (#{result.plan.rule_id})")
    if not result.sent:
        print("  No reply sent")
    for index, text in enumerate(result.sent, 1):
        print(f"  Reply {index}: {text}")
    for error in result.errors:
        print(f"  Send error: {error}")


def run_test_message(config: Config, message: str, sender: str = "+1234567890", is_group: bool = False) -> None:
    """Run one message through the full pipeline over the local transport."""
    print(f"\nTest Message: {message}")
    print(f"From: {sender} ({'group' if is_group else 'personal'})")
    print("-" * 50)
    asyncio.run(_run_test_message(config, message, sender, is_group))


async def _run_send(config: Config, number: str, message: str) -> None:
    database = init_database(config.database_path)
    dispatcher = build_dispatcher(config, database, build_transport(config))
    try:
        await dispatcher.start()
        await dispatcher.send_manual(number, message)
    finally:
        await dispatcher.stop()
        database.close()


def run_send(config: Config, number: str, message: str) -> None:
    """Send a message."""
    print(f"\nSending to {number}...")
    print(f"Message: {message}")
    print("-" * 50)
    asyncio.run(_run_send(config, number, message))
    print("✓ Message sent successfully")


def run_cleanup(config: Config, days: Optional[float] = None) -> None:
    """Delete old messages now."""
    database = init_database(config.database_path)
    try:
        if days:
            deleted = database.cleanup_messages(days)
        else:
            deleted = database.apply_retention(config.storage.message_ttl_days)
    finally:
        database.close()
    print(f"✓ Deleted {deleted} message(s)")


def run_cleanup_range(config: Config, start: str, end: str) -> None:
    database = init_database(config.database_path)
    try:
        deleted = database.cleanup_range(start, end)
    finally:
        database.close()
    print(f"✓ Deleted {deleted} message(s) between {start} and {end}")


def run_set_retention(config: Config, days: float) -> None:
    database = init_database(config.database_path)
    try:
        days = database.set_retention(days)
        deleted = database.cleanup_messages(days)
    finally:
        database.close()
    print(f"✓ Messages are kept for {days:g} day(s), {deleted} older message(s) deleted")


async def purge_expired_messages(database: Database, config: Config) -> None:
    """Delete messages past the retention period off the event loop."""
    try:
        await asyncio.to_thread(database.apply_retention, config.storage.message_ttl_days)
    except AutoReplyError as e:
        logger.error(f"Message cleanup failed: {e}")


async def _retention_loop(database: Database, config: Config) -> None:
    while True:
        await purge_expired_messages(database, config)
        await asyncio.sleep(config.storage.cleanup_interval)


async def _run_logout(config: Config) -> None:
    database = init_database(config.database_path)
    dispatcher = build_dispatcher(config, database, build_transport(config))
    try:
        await dispatcher.logout()
        print(f"✓ Logged out ({dispatcher.status()['status']})")
    finally:
        await dispatcher.fallback.aclose()
        database.close()


async def _run_daemon(config: Config) -> None:
    database = init_database(config.database_path)
    transport = build_transport(config)
    dispatcher = build_dispatcher(config, database, transport)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except NotImplementedError:
            pass

    retention_task = asyncio.create_task(_retention_loop(database, config))
    try:
        await dispatcher.start()
        print("✓ Listening for messages")
        await stop_event.wait()
        logger.info("Shutting down...")
    finally:
        retention_task.cancel()
        try:
            await retention_task
        except asyncio.CancelledError:
            pass
        await dispatcher.stop()
        database.close()


def run_daemon(config: Config) -> None:
    """Run as background daemon."""
    print("\nStarting Auto Reply Bot daemon...")
    print("Press Ctrl+C to stop\n")
    asyncio.run(_run_daemon(config))


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        if args.setup:
            run_setup_wizard()
            return 0

        config = load_config(args.config)

        # Apply command-line overrides
        if args.provider and args.provider != config.llm.provider:
            config.llm.provider = args.provider
            config.llm.api_key = (
                os.environ.get("AUTO_REPLY_LLM_API_KEY")
                or os.environ.get(API_KEY_HINTS[args.provider], "")
            )
        if args.model:
            config.llm.model = args.model
        if args.debug:
            config.debug = True

        # Setup logging
        setup_logging(
            log_dir=config.log_dir,
            log_level="DEBUG" if config.debug else "INFO",
            console_output=True
        )

        # Route to appropriate mode
        if args.daemon:
            run_daemon(config)
        elif args.test:
            message = args.test[0]
            sender = args.test[1] if len(args.test) > 1 else "+1234567890"
            run_test_message(config, message, sender, args.group)
        elif args.send:
            run_send(config, args.send[0], args.send[1])
        elif args.import_rules:
            run_import_rules(config, args.import_rules)
        elif args.list_rules:
            run_list_rules(config)
        elif args.cleanup is not None:
            run_cleanup(config, args.cleanup)
        elif args.cleanup_range:
            run_cleanup_range(config, args.cleanup_range[0], args.cleanup_range[1])
        elif args.retention is not None:
            run_set_retention(config, args.retention)
        elif args.logout:
            asyncio.run(_run_logout(config))
        else:
            run_status_check(config)
            if not args.status:
                print("No mode specified. Use --daemon, --test, or --help")

        return 0

    except AutoReplyError as e:
        print(f"\nError: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 0
    except Exception as e:
        print(f"\nUnexpected error: {e}")
        if args.debug:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
