"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the fraud engine.

- Provides argparse-based CLI
- Loads configuration from YAML, environment and flags
- Entry point for the scheduler process and for one-off runs

============================================================
USAGE
============================================================
python -m orchestrator.cli run
python -m orchestrator.cli once cluster_scan --dry-run
python -m orchestrator.cli list
python -m orchestrator.cli show-config --config engine.yaml

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from core.exceptions import FraudEngineError, JobLockedError

from .config import EngineConfig, get_conservative_config, load_config_from_yaml
from .core import EngineContainer, setup_logging


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def _add_common_options(parser: argparse.ArgumentParser, defaults: bool = True) -> None:
    """
    Register the configuration and logging options.
    
    The options live on the top-level parser and on every command,
    so they are accepted before or after the command name. Commands
    register them with suppressed defaults so a value given before
    the command is not reset.
    """
    def default(value):
        return value if defaults else argparse.SUPPRESS
    
    # --------------------------------------------------------
    # Configuration Options
    # --------------------------------------------------------
    config_group = parser.add_argument_group("Configuration Options")
    
    config_group.add_argument(
        "--config", "-c",
        type=str,
        metavar="PATH",
        default=default(None),
        help="YAML configuration file (default: FRAUD_ENGINE_CONFIG)",
    )
    
    config_group.add_argument(
        "--conservative",
        action="store_true",
        default=default(False),
        help="Start from the conservative profile (dry run, transitive merge)",
    )
    
    config_group.add_argument(
        "--dry-run",
        action="store_true",
        default=default(False),
        help="Record remediation decisions without applying them",
    )
    
    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")
    
    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=default(None),
        help="Logging level (default: from configuration)",
    )
    
    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default=default(None),
        help="Logging format (default: from configuration)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fraud-engine",
        description="Fraud and abuse detection engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run          - Run the scheduler until SIGINT/SIGTERM
  once JOB     - Run one job immediately and exit
  list         - List scheduled jobs and their intervals
  show-config  - Print the effective configuration

Examples:
  %(prog)s run
  %(prog)s once trust_recompute
  %(prog)s once cluster_scan --dry-run
        """
    )
    _add_common_options(parser)
    
    common = argparse.ArgumentParser(add_help=False)
    _add_common_options(common, defaults=False)
    
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("run", parents=[common], help="Run the scheduler loop")
    once = subparsers.add_parser("once", parents=[common], help="Run a single job and exit")
    once.add_argument("job", type=str, help="Job name (see `list`)")
    subparsers.add_parser("list", parents=[common], help="List scheduled jobs")
    subparsers.add_parser("show-config", parents=[common], help="Print the effective configuration")
    
    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )
    
    return parser


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> EngineConfig:
    """
    Build the engine configuration.
    
    Precedence: defaults or conservative profile, YAML file,
    environment, then command-line flags.
    """
    if args.config:
        base = load_config_from_yaml(args.config)
    elif args.conservative:
        base = get_conservative_config()
    else:
        base = None
    
    config = EngineConfig.from_env(base)
    
    if args.dry_run:
        config = replace(config, remediation=replace(config.remediation, dry_run=True))
    if args.log_level:
        config = replace(config, log_level=args.log_level)
    if args.log_format:
        config = replace(config, log_format=args.log_format)
    return config


def list_jobs(config: EngineConfig) -> None:
    """Print configured jobs."""
    print(f"\nScheduled jobs (config {config.version})")
    print("=" * 60)
    for name, seconds in sorted(config.scheduler.intervals.items()):
        state = "disabled" if name in config.scheduler.disabled_jobs else f"every {seconds // 60} min"
        print(f"  {name:30s} {state}")
    print()


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(args: argparse.Namespace, config: EngineConfig) -> int:
    """
    Async main entry point.
    
    Returns:
        Exit code
    """
    try:
        container = EngineContainer.build(config)
    except FraudEngineError as e:
        logging.error(f"Cannot build engine: {e.message}")
        return 2
    
    try:
        await container.start()
        
        if args.command == "once":
            result = await container.scheduler.run_job(args.job)
            print(json.dumps(result.to_dict(), indent=2, default=str))
            return 0 if result.success else 1
        
        await container.scheduler.run_forever()
        return 0
    
    except JobLockedError as e:
        logging.warning(e.message)
        return 75
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130
    except Exception as e:
        logging.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        await container.close()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.
    
    Args:
        argv: Command line arguments (default: sys.argv[1:])
    
    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)
    
    try:
        config = build_config(args).ensure_valid()
    except FraudEngineError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    
    setup_logging(config.log_level, config.log_format)
    
    if args.command == "list":
        list_jobs(config)
        return 0
    if args.command == "show-config":
        print(json.dumps(config.to_dict(), indent=2, default=str))
        return 0
    
    print_banner(args, config)
    return asyncio.run(async_main(args, config))


def print_banner(args: argparse.Namespace, config: EngineConfig) -> None:
    """Print startup banner."""
    print()
    print("=" * 60)
    print("  FRAUD ENGINE")
    print("=" * 60)
    print(f"  Command:    {args.command} {getattr(args, 'job', '')}".rstrip())
    print(f"  Config:     {config.version}")
    print(f"  Dry Run:    {config.remediation.dry_run}")
    print(f"  Merge:      {config.farming.merge.strategy.value}")
    print(f"  Log Level:  {config.log_level}")
    print("=" * 60)
    print()


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
