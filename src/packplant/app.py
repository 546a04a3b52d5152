from __future__ import annotations

import argparse
import logging

from nicegui import ui

from packplant.context import build_context
from packplant.logging_conf import configure_logging, parse_package_levels
from packplant.settings import Settings, default_db_path
from packplant.ui.pages import register_pages

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Empacadora")
    parser.add_argument("--host", type=str, default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--log-level", type=str, default="INFO")
    parser.add_argument(
        "--log-package",
        action="append",
        default=[],
        metavar="PAQUETE=NIVEL",
        help="Nivel por paquete, p. ej. packplant.cache=DEBUG (repetible)",
    )
    return parser


def main() -> None:
    parser = build_arg_parser()
    args = parser.parse_args()
    try:
        package_levels = parse_package_levels(args.log_package)
    except ValueError as exc:
        parser.error(str(exc))
    configure_logging(args.log_level, package_levels=package_levels)
    base = Settings(db_path=default_db_path(), host=args.host, port=args.port, log_level=args.log_level)

    ctx = build_context(base)
    planta = ctx.repo.get_config(key="planta", default="Empacadora") or "Empacadora"
    register_pages(ctx)
    logger.info(
        "Starting %s on %s:%s (pallet cache %ss, summary cache %ss)",
        planta,
        ctx.settings.host,
        ctx.settings.port,
        ctx.settings.pallet_cache_ttl,
        ctx.settings.summary_cache_ttl,
    )

    ui.run(host=ctx.settings.host, port=ctx.settings.port, title=planta, reload=False)


if __name__ in {"__main__", "__mp_main__"}:
    main()
