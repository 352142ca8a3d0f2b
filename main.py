#!/usr/bin/env python3
"""
osu! stats tracker - web backend.
Twitter sign-in, linked osu! accounts and tweet-posting settings.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep tracker imports lazy (inside main) so `--migrate` does not build the web app.
#


def main() -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="osu! stats tracker web backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Apply pending database migrations
  python main.py --migrate

  # Run the web server
  python main.py --serve --port 8080
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP server")
    parser.add_argument("--migrate", action="store_true", help="Apply pending Postgres migrations and exit")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")

    args = parser.parse_args()

    try:
        if args.migrate:
            from tracker.db.migrate import main as migrate_main

            return migrate_main()

        if args.serve:
            from tracker.api.web import run

            run(host=args.host, port=args.port)
            return 0

        parser.print_help()
        return 2
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
