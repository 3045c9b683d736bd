"""Entry point for the PDF layout analysis server."""

import argparse
import os

import uvicorn


def main():
    parser = argparse.ArgumentParser(description="PDF layout analysis server")
    parser.add_argument(
        "--provider",
        choices=["anthropic", "openai"],
        default=None,
        help="Model provider (default: anthropic). Overrides LAYOUT_MODEL_PROVIDER env var.",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Disable the in-memory result cache. Overrides LAYOUT_CACHE_ENABLED env var.",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        default=None,
        help="Minimum log level. Overrides LOG_LEVEL env var.",
    )
    args = parser.parse_args()

    if args.provider:
        os.environ["LAYOUT_MODEL_PROVIDER"] = args.provider
    if args.no_cache:
        os.environ["LAYOUT_CACHE_ENABLED"] = "false"

    from pdf_layout_server.logger import logger
    from pdf_layout_server.server import app

    if args.log_level:
        logger.set_level(args.log_level)

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
