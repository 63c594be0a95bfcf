#!/usr/bin/env python3
"""
Print Agent command line.

    python app.py [serve]        run the HTTP agent (default)
    python app.py printers       list printers the agent can see
    python app.py test-print     send the test receipt to a running agent
    python app.py open-logs      open the log viewer of a running agent
"""

import argparse
import logging
import os
import sys
import webbrowser

from print_agent import create_app
from print_agent.core.config import get_config_path, get_settings
from print_agent.core.logging import configure_logging


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Silent print agent for POS receipts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="serve",
        choices=["serve", "printers", "test-print", "open-logs"],
        help="What to do (default: serve)",
    )
    parser.add_argument(
        "--host",
        default=os.environ.get("PRINTAGENT_HOST", "127.0.0.1"),
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to / reach the agent on (default: configured port)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def serve(args, logger) -> int:
    settings = get_settings()
    port = args.port or settings.port
    app = create_app(configure_logs=False)
    logger.info("Starting Print Agent on http://%s:%d", args.host, port)
    logger.info("Config: %s", get_config_path())
    logger.info("Bill printer: %s | KOT printer: %s", settings.printer_name or "-", settings.kitchen_printer_name or "-")
    app.run(host=args.host, port=port, debug=False, threaded=True)
    return 0


def list_printers_cmd(args, logger) -> int:
    from print_agent.printing.orchestrator import list_available_printers

    try:
        found = list_available_printers()
    except Exception as e:
        logger.error("Could not enumerate printers: %s", e)
        return 1
    if not found:
        print("No printers found.")
        return 0
    for p in found:
        marker = "*" if p.is_default else " "
        print(f"{marker} {p.name:<32} {p.status.value:<9} {p.driver:<7} {p.display_name}")
    return 0


def test_print_cmd(args, logger) -> int:
    import requests

    from print_agent.printing.orchestrator import trigger_test_print

    settings = get_settings()
    base_url = f"http://localhost:{args.port or settings.port}"
    try:
        result = trigger_test_print(settings, base_url=base_url)
    except requests.RequestException as e:
        logger.error("Agent not reachable at %s: %s", base_url, e)
        return 1
    if result.get("success"):
        print(f"Test print sent to {result.get('printer')} in {result.get('durationMs')}ms")
        return 0
    print(f"Test print failed [{result.get('kind')}]: {result.get('error')}")
    return 1


def open_logs_cmd(args, logger) -> int:
    url = f"http://localhost:{args.port or get_settings().port}/logs"
    logger.info("Opening %s", url)
    webbrowser.open(url)
    return 0


COMMANDS = {
    "serve": serve,
    "printers": list_printers_cmd,
    "test-print": test_print_cmd,
    "open-logs": open_logs_cmd,
}


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(logging.DEBUG if args.debug else logging.INFO)
    logger = logging.getLogger("print_agent.cli")
    return COMMANDS[args.command](args, logger)


if __name__ == "__main__":
    sys.exit(main())
