"""Azure inventory export. Use --help for usage."""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from core.errors.exceptions import ConfigurationError
from core.logging.context_managers import LogContext, log_operation
from core.logging.setup import generate_export_id, setup_logging
from core.logging.utilities import log_exception, log_startup_banner
from inventory_export.config import load_config, parse_bool
from inventory_export.coordinator import SCOPES, TriggerContext, run_export
from inventory_export.metrics import start_metrics_server

# __main__.py is at src/inventory_export/__main__.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2

# Placeholder logger until setup_logging() is called in main()
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="azure-inventory-export",
        description="Export Azure AD and ARM inventory to Event Hubs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Export every enabled tenant and subscription in config.yaml
    python -m inventory_export

    # Only subscriptions, from a specific config file
    python -m inventory_export --config /etc/inventory/config.yaml --scope subscriptions

    # A single unit, JSON logs to stdout, metrics on :9090
    python -m inventory_export --unit <subscription-id> --json-logs --metrics-port 9090
        """,
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="YAML config file (default: $INVENTORY_EXPORT_CONFIG or ./config.yaml)",
    )

    parser.add_argument(
        "--scope",
        choices=SCOPES,
        default="all",
        help="Which unit kinds to export (default: all)",
    )

    parser.add_argument(
        "--unit",
        action="append",
        default=None,
        metavar="ID",
        help="Restrict the run to this tenant/subscription id (repeatable)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Console logging level (default: INFO)",
    )

    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Log directory path (default: from LOG_DIR env var or ./logs)",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Send JSON log output to stdout only, skipping file handlers. "
        "Can also be set via LOG_TO_STDOUT environment variable.",
    )

    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port while the export runs",
    )

    parser.add_argument(
        "--on-demand",
        action="store_true",
        help="Tag the run as an on-demand export instead of a scheduled one",
    )

    return parser.parse_args(argv)


def _setup_logging(args, export_id: str) -> None:
    log_to_stdout = args.json_logs or parse_bool(os.getenv("LOG_TO_STDOUT", "false"))
    log_dir = Path(args.log_dir or os.getenv("LOG_DIR") or "logs")
    setup_logging(
        name="inventory_export",
        log_dir=log_dir,
        json_format=parse_bool(os.getenv("JSON_LOGS", "true")),
        console_level=getattr(logging, args.log_level),
        export_id=export_id,
        log_to_stdout=log_to_stdout,
    )


def main(argv=None) -> int:
    global logger

    load_dotenv(PROJECT_ROOT / ".env")
    args = parse_args(argv)

    export_id = os.getenv("EXPORT_ID") or generate_export_id()
    _setup_logging(args, export_id)
    logger = logging.getLogger(__name__)

    trigger_name = "OnDemandExport" if args.on_demand else "ScheduledExport"
    log_startup_banner(
        logger,
        "Azure Inventory Export",
        export_id=export_id,
        trigger=trigger_name,
        scope=args.scope,
        units=",".join(args.unit) if args.unit else "all",
    )

    try:
        with log_operation(logger, "load_config", target=args.config or "default"):
            config = load_config(args.config)
        if args.metrics_port:
            start_metrics_server(args.metrics_port)
        trigger = TriggerContext(name=trigger_name, scope=args.scope, export_id=export_id)
        result = run_export(trigger, config, unit_filter=args.unit)
    except ConfigurationError as e:
        log_exception(logger, e, "Configuration error", include_traceback=False)
        print(json.dumps({"success": False, "export_id": export_id, "error": str(e)}, indent=2))
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        logger.warning("Export interrupted")
        return EXIT_FAILURE

    with LogContext(export_id=export_id):
        logger.info(
            "Export complete",
            extra={
                "success": result.success,
                "http_status": result.http_status,
                "units_total": result.total_units,
                "units_failed": result.failed_units,
            },
        )
    print(json.dumps(result.to_dict(), indent=2, default=str))
    return EXIT_SUCCESS if result.success else EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
