"""
Asana Connector CLI — configuration checks and webhook maintenance.

Commands:
- asana-connector check      — Load asana.yaml, validate base URL, print webhook target
- asana-connector webhooks   — List the workspace's webhooks as Asana reports them
- asana-connector reconcile  — Reconcile webhooks for the given resource gids once
- asana-connector serve      — Serve the webhook endpoint and reconcile on startup
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

logger = logging.getLogger("asana_connector.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="asana-connector",
        description="Asana Connector — Asana webhook bridge",
    )
    parser.add_argument(
        "--config", default=None, help="Path to asana.yaml (default: auto-discover)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("check", help="Validate configuration")
    subparsers.add_parser("webhooks", help="List remote webhooks for the workspace")

    for name, help_text in (
        ("reconcile", "Create missing webhooks for the given resources"),
        ("serve", "Serve the webhook endpoint and reconcile on startup"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--gid", action="append", required=True, dest="gids",
            help="Asana resource gid (repeatable)",
        )
        sub.add_argument(
            "--event", default="*", help="Action filter for every gid (default: *)"
        )
        if name == "serve":
            sub.add_argument("--host", default="0.0.0.0", help="Host to bind (default: 0.0.0.0)")
            sub.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")

    args = parser.parse_args(argv)

    if args.command == "check":
        return cmd_check(args)
    elif args.command == "webhooks":
        return cmd_webhooks(args)
    elif args.command == "reconcile":
        return cmd_reconcile(args)
    elif args.command == "serve":
        return cmd_serve(args)
    else:
        parser.print_help()
        return 0


def _load_config(args: argparse.Namespace):
    from asana_connector.engine.config import load_connector_config

    try:
        config = load_connector_config(args.config)
    except Exception as e:
        print(f"[ERROR] Failed to load config: {e}")
        return None
    logging.basicConfig(level=config.logging.level)
    return config


def cmd_check(args: argparse.Namespace) -> int:
    """Validate base_url / webhook_path and report the webhook target."""
    from asana_connector.engine.errors import InvalidConfigurationError

    config = _load_config(args)
    if config is None:
        return 1
    print("[OK] Configuration loaded")

    try:
        target = config.webhook_url()
    except InvalidConfigurationError as e:
        print(f"[ERROR] {e.message}")
        return 1
    print(f"[OK] Webhook target: {target}")

    if config.workspace_id:
        print(f"[OK] Workspace: {config.workspace_id}")
    else:
        print("[WARN] workspace_id not set — required once any subscription is registered")
    return 0


def cmd_webhooks(args: argparse.Namespace) -> int:
    """Print the webhooks Asana currently reports for the workspace."""
    from asana_connector.engine.client import AsanaClient
    from asana_connector.engine.errors import AsanaConnectorError

    config = _load_config(args)
    if config is None:
        return 1
    if not config.workspace_id:
        print("[ERROR] workspace_id is not configured")
        return 1

    async def _list():
        async with AsanaClient(config.access_token, api_config=config.api) as client:
            return await client.get_webhooks(config.workspace_id)

    try:
        webhooks = asyncio.run(_list())
    except AsanaConnectorError as e:
        print(f"[ERROR] {e.message}")
        return 1

    print(f"{len(webhooks)} webhook(s) in workspace {config.workspace_id}")
    for webhook in webhooks:
        state = "active" if webhook.active else "inactive"
        print(f"  {webhook.gid}  resource={webhook.resource_gid}  {state}  {webhook.target}")
    return 0


def _start_log_queue(config):
    """Start the JSON-lines log queue under config.logging.directory."""
    from asana_connector.engine.logging import init_logging

    return init_logging(
        log_dir=config.logging.directory,
        flush_interval_ms=config.logging.flush_interval_ms,
        flush_batch_size=config.logging.flush_batch_size,
        max_queue_size=config.logging.max_queue_size,
    )


def _build_connector(config, gids: List[str], event: str, log_queue=None):
    from asana_connector.connector import AsanaConnector
    from asana_connector.engine.events import EventBus

    def _print_event(payload):
        print(f"[EVENT] {payload.get('id')}: {payload.get('action')} {payload.get('resource')}")

    connector = AsanaConnector(EventBus(), config, log_queue=log_queue)
    for gid in gids:
        connector.on({"gid": gid, "asana_event": event}, _print_event)
    return connector


def cmd_reconcile(args: argparse.Namespace) -> int:
    """Run one reconciliation pass. The webhook endpoint must already be served."""
    from asana_connector.engine.errors import AsanaConnectorError
    from asana_connector.engine.logging import shutdown_logging

    config = _load_config(args)
    if config is None:
        return 1

    log_queue = _start_log_queue(config)

    async def _run():
        connector = _build_connector(config, args.gids, args.event, log_queue=log_queue)
        try:
            return await connector.start()
        finally:
            await connector.close()

    try:
        results = asyncio.run(_run())
    except AsanaConnectorError as e:
        print(f"[ERROR] {e.message}")
        return 1
    finally:
        shutdown_logging()

    failed = 0
    for result in results:
        tag = "OK" if result.ok else "ERROR"
        failed += 0 if result.ok else 1
        print(f"[{tag}] {result.resource_gid}: {result.status} → {result.target}")
    return 1 if failed else 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the endpoint with uvicorn; reconciliation failure stops the server."""
    from asana_connector.bridge import serve
    from asana_connector.engine.errors import AsanaConnectorError
    from asana_connector.engine.logging import shutdown_logging

    config = _load_config(args)
    if config is None:
        return 1

    log_queue = _start_log_queue(config)
    try:
        connector = _build_connector(config, args.gids, args.event, log_queue=log_queue)
        asyncio.run(serve(connector, host=args.host, port=args.port))
    except AsanaConnectorError as e:
        print(f"[ERROR] {e.message}")
        return 1
    except KeyboardInterrupt:
        pass
    finally:
        shutdown_logging()
    return 0


if __name__ == "__main__":
    sys.exit(main())
