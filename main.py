"""
Deal Desk — Entry Point
=========================

Run:
    python main.py serve      JSON-RPC tool server on stdin/stdout
    python main.py console    interactive menu
    python main.py generate   write demo deals to the sheet

Common options: --data PATH, --config PATH, --log-level LEVEL
"""

import argparse
import sys

from scripts.lib.errors import DealDeskError
from scripts.lib.logger import set_level, setup_logger
from scripts.pipeline.service import build_service

logger = setup_logger("deal-desk")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Deal Desk: UK sales pipeline reports")
    parser.add_argument("--data", help="Deal sheet path (default: DEAL_DESK_DATA or data/deals.csv)")
    parser.add_argument("--config", help="Pipeline YAML (default: DEAL_DESK_CONFIG or configs/pipeline.yaml)")
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override LOG_LEVEL",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("serve", help="Run the JSON-RPC tool server on stdin/stdout")
    commands.add_parser("console", help="Run the interactive console menu")
    generate = commands.add_parser("generate", help="Write synthetic deals to the sheet")
    generate.add_argument("--count", type=int, default=100, help="Number of deals")
    generate.add_argument("--seed", type=int, help="Random seed")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.log_level:
        set_level(args.log_level)

    try:
        service = build_service(args.data, args.config)
    except DealDeskError as e:
        logger.error("Startup failed: %s", e)
        return 1

    if args.command == "serve":
        from scripts.tool_server import ToolServer
        ToolServer(service).serve()
    elif args.command == "console":
        from scripts.console_menu import ConsoleMenu
        ConsoleMenu(service).run()
    elif args.command == "generate":
        if args.count < 0:
            logger.error("--count must not be negative")
            return 2
        generated = service.generate_synthetic(args.count, args.seed)
        try:
            service.save()
        except DealDeskError as e:
            logger.error("Save failed: %s", e)
            return 1
        logger.info("Wrote %d synthetic deals", generated)
    return 0


if __name__ == "__main__":
    sys.exit(main())
