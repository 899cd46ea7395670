"""Entry point for the Ceph S3 operator."""

import argparse
import logging
import sys
from typing import Any

import kopf

from ceph_s3_operator import __version__
from ceph_s3_operator.config import LogLevel, OperatorConfig, load_config
from ceph_s3_operator.utils.errors import ConfigurationError


def setup_logging(level: LogLevel) -> None:
    """Configure logging for the operator."""
    logging.basicConfig(
        level=level.value,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="ceph-s3-operator",
        description="Kubernetes operator for self-service S3 users on Ceph RGW",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML config file",
    )

    # Watching
    parser.add_argument(
        "--namespace",
        action="append",
        dest="namespaces",
        default=None,
        help="Namespace to watch, repeatable (default: all namespaces)",
    )
    parser.add_argument(
        "--standalone",
        action="store_true",
        help="Run without peering with other operator instances",
    )

    # Webhooks
    parser.add_argument(
        "--dev-webhooks",
        action="store_true",
        help="Serve webhooks for a local development cluster",
    )
    parser.add_argument(
        "--disable-webhooks",
        action="store_true",
        help="Do not serve admission webhooks",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> OperatorConfig:
    """Load the configuration, command line flags take precedence."""
    overrides: dict[str, Any] = {}

    if args.log_level:
        overrides["log_level"] = LogLevel(args.log_level)

    if args.disable_webhooks:
        overrides["enable_webhooks"] = False

    return load_config(args.config, **overrides)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = build_config(args)
    except (ConfigurationError, ValueError) as e:
        setup_logging(LogLevel.ERROR)
        logging.getLogger(__name__).error(f"Configuration error: {e}")
        return 1

    setup_logging(config.log_level)

    logger = logging.getLogger(__name__)
    logger.info(f"Starting Ceph S3 operator v{__version__}")

    try:
        warnings = config.validate_webhook_config()
        for warning in warnings:
            logger.warning(warning)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    from ceph_s3_operator.handlers import register_handlers
    from ceph_s3_operator.operator import S3Operator

    operator = S3Operator(config)
    registry = kopf.OperatorRegistry()
    register_handlers(registry, operator, dev_webhooks=args.dev_webhooks)

    if args.namespaces:
        logger.info(f"Watching namespaces: {', '.join(args.namespaces)}")
    else:
        logger.info("Watching all namespaces")

    kopf.run(
        registry=registry,
        standalone=args.standalone,
        clusterwide=not args.namespaces,
        namespaces=args.namespaces or (),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
