#!/usr/bin/env python3
"""
Run the TCG Price Tracker API server.

Usage:
    python run_api.py
    python run_api.py --port 8080
    python run_api.py --host 0.0.0.0 --port 8000

Supabase credentials are read from SUPABASE_URL / SUPABASE_ANON_KEY
(or the NEXT_PUBLIC_ variants), the TCG API key from POKEMONTCG_API_KEY.
"""

import argparse

import uvicorn

from core.logging_setup import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run TCG Price Tracker API server")
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to listen on (default: 8000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    log_file = setup_logging(debug=args.log_level == "debug")

    print(f"Starting TCG Price Tracker API on http://{args.host}:{args.port}")
    print(f"API docs: http://{args.host}:{args.port}/docs")
    print(f"Logs: {log_file}")
    print()

    # The update queue lives in process memory, so a single worker process
    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
