import argparse
import logging
import signal
import sys
import threading

from clipkeep.config import LOG_PATH
from clipkeep.tokens import ApiTokenManager, default_token_store
from clipkeep.utils import ensure_dirs


def setup_logging() -> None:
    ensure_dirs()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(LOG_PATH),
            logging.StreamHandler(sys.stderr),
        ],
    )


def show_token(regenerate: bool = False) -> int:
    """Print the API bearer token, optionally replacing it first."""
    manager = ApiTokenManager(default_token_store())
    try:
        token = manager.regenerate() if regenerate else manager.current()
    except OSError as e:
        print(f"Failed to access API token: {e}", file=sys.stderr)
        return 1
    print(token)
    return 0


def run_headless() -> int:
    """Run capture and the API server without the menu bar icon."""
    setup_logging()

    from clipkeep.service import ClipKeepService

    service = ClipKeepService()
    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    service.start()
    try:
        stop.wait()
    finally:
        service.close()
    return 0


def run_app():
    """Run the ClipKeep menu bar application."""
    setup_logging()

    from clipkeep.app import ClipKeepApp

    app = ClipKeepApp()
    app.run()


def main():
    parser = argparse.ArgumentParser(
        description="ClipKeep - Clipboard history with a local automation API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  (none)      Run ClipKeep in the menu bar
  headless    Run capture and the API server without a menu bar icon
  token       Print the API token (--regenerate to replace it)

Examples:
  clipkeep token                 # Show the bearer token for API clients
  clipkeep token --regenerate    # Invalidate the old token immediately
""",
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=["headless", "token"],
        help="Command to run",
    )
    parser.add_argument(
        "--regenerate",
        action="store_true",
        help="With 'token': replace the API token",
    )

    args = parser.parse_args()

    if args.command == "token":
        sys.exit(show_token(regenerate=args.regenerate))
    elif args.command == "headless":
        sys.exit(run_headless())
    else:
        run_app()


if __name__ == "__main__":
    main()
