"""
CLI entry point for the expense tracker MCP server.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from expense_tracker_mcp.server import run_server


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Expense Tracker MCP Server - Track expenses and budgets through MCP"
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        help="Directory for the expense database and settings (default: ~/.expense_tracker)",
    )
    parser.add_argument(
        "--export-dir",
        type=Path,
        help="Directory for CSV exports (default: <data-dir>/exports)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,  # MCP uses stdout for protocol, so log to stderr
    )

    # Run the server
    try:
        asyncio.run(run_server(data_dir=args.data_dir, export_dir=args.export_dir))
    except KeyboardInterrupt:
        logging.info("Server stopped by user")
        sys.exit(0)
    except Exception as e:
        logging.exception(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
