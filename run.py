from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from ledquote.app import create_app

DEFAULT_CONFIG = ROOT / "config.json"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the LED quotation service")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG if DEFAULT_CONFIG.exists() else None,
        help=(
            "Optional path to a JSON/YAML/TOML config file (defaults to config.json when present, "
            "otherwise the LEDQUOTE_CONFIG environment variable or built-in defaults)"
        ),
    )
    parser.add_argument("--host", default=None, help="Host interface to bind (default: SERVER_HOST)")
    parser.add_argument("--port", type=int, default=None, help="Port to listen on (default: SERVER_PORT)")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable Flask debug mode (includes auto-reload)",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    config_arg: Path | None = args.config
    config_path = str(config_arg) if config_arg else os.getenv("LEDQUOTE_CONFIG")

    app = create_app(config_path)

    host = args.host or app.config["SERVER_HOST"]
    port = args.port or int(app.config["SERVER_PORT"])
    app.run(host=host, port=port, debug=args.debug or bool(app.config["DEBUG"]))


if __name__ == "__main__":
    main()
