"""진입점: python -m geoenricher"""

from __future__ import annotations

import argparse
import asyncio
import sys


def main(argv: list[str] | None = None) -> None:
    """GeoEnricher CLI 진입점. 설정을 로드하고 애플리케이션을 실행한다."""
    parser = argparse.ArgumentParser(
        prog="geoenricher",
        description="GeoEnricher - GeoIP enrichment for structured log records",
    )
    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration YAML file (default: config/default.yaml)",
    )
    parser.add_argument(
        "--enrich",
        metavar="FILE",
        default=None,
        help="Enrich JSON Lines records from FILE ('-' for stdin) to stdout and exit",
    )
    args = parser.parse_args(argv)

    from geoenricher.utils.config import Config
    from geoenricher.app import GeoEnricher
    from geoenricher.utils.logging_setup import setup_logging

    config = Config.load(args.config)
    app = GeoEnricher(config)

    if args.enrich is not None:
        setup_logging(config, stream=sys.stderr)
        app.start_resource()
        try:
            if args.enrich == "-":
                app.enrich_stream(sys.stdin, sys.stdout)
            else:
                with open(args.enrich, encoding="utf-8") as f:
                    app.enrich_stream(f, sys.stdout)
        finally:
            app.resource.stop()
        return

    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
