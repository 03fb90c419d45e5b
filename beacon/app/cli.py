"""Command line: beacon-agent [--config PATH] [--api-port N] [--orchestrator-port N] [--host H] [--debug]."""

import argparse
import logging
import sys
from typing import List, Optional

from beacon.app.agent import run_agent
from beacon.config.settings import ConfigError, apply_cli_overrides, get_logging_config, read_config
from beacon.core.logging_utils import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="beacon-agent",
        description="Serve host health/metrics (data-plane) and an orchestrator heartbeat (control-plane).",
    )
    parser.add_argument("--config", default=None, help="YAML config path (default: $BEACON_CONFIG or config/config.yaml)")
    parser.add_argument("--api-port", type=int, default=None, metavar="PORT", help="data-plane port (default 9001)")
    parser.add_argument(
        "--orchestrator-port", type=int, default=None, metavar="PORT", help="control-plane port (default 3001)"
    )
    parser.add_argument("--host", default=None, help="bind address for both listeners (default 0.0.0.0)")
    parser.add_argument("--debug", action="store_true", help="DEBUG logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config, resolved_path = read_config(args.config)
        config = apply_cli_overrides(
            config, host=args.host, api_port=args.api_port, orchestrator_port=args.orchestrator_port
        )
        log_cfg = get_logging_config(config)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1
    buffer = setup_logging(level=log_cfg["level"], debug=args.debug, buffer_size=log_cfg["buffer_size"])
    logger.info("config=%s", resolved_path or "defaults")
    return run_agent(config, log_buffer=buffer)


if __name__ == "__main__":
    sys.exit(main())
