"""
Nimbus CLI - Main entry point.

Loads a flow file and either runs it as a long-lived service, injects a single
message into one of its nodes, or only validates it.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from nimbus_pubsub import register_nodes
from nimbus_runtime import FlowConfig, NodeTypeNotAvailableError, NodeTypeRegistry

from .app import BridgeOptions, FlowApp, inject_once


def setup_logging(log_file: Optional[Path] = None, verbose: bool = False) -> None:
    """
    Setup logging for the CLI.

    Args:
        log_file: Optional path to a log file (console output is always on)
        verbose: Log at DEBUG instead of INFO
    """
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            *(
                [logging.FileHandler(log_file)]
                if log_file
                else []
            )
        ]
    )


def parse_attributes(pairs: List[str]) -> Dict[str, str]:
    """
    Parse repeated `--attribute key=value` options.

    Raises:
        ValueError: If an entry has no '=' or an empty key
    """
    attributes = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Attribute must look like key=value, got {pair!r}")
        attributes[key] = value
    return attributes


def build_message(payload: str, attributes: List[str]) -> Dict[str, Any]:
    message: Dict[str, Any] = {'payload': payload}
    if attributes:
        message['attributes'] = parse_attributes(attributes)
    return message


def validate_flow(flow_path: Path) -> int:
    """
    Load a flow and check every node type is registered.

    Returns:
        Process exit code
    """
    flow = FlowConfig.from_yaml(flow_path)
    registry = register_nodes(NodeTypeRegistry())

    failures = 0
    for node_config in flow.nodes:
        type_name = node_config["type"]
        if registry.is_available(type_name):
            print(f"  ok      {node_config['id']}  ({type_name})")
        else:
            failures += 1
            print(f"  unknown {node_config['id']}  ({type_name})")

    if failures:
        print(f"{failures} node(s) use unknown types; available: {', '.join(sorted(registry.available_types))}")
        return 1
    print(f"Flow OK: {len(flow.nodes)} node(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nimbus",
        description="Nimbus - Run Google Cloud Pub/Sub and Cloud IoT connector flows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check a flow file
  nimbus validate flows/telemetry.yaml

  # Run a flow until Ctrl+C
  nimbus run flows/telemetry.yaml

  # Forward an MQTT feed into a publish node
  nimbus run flows/telemetry.yaml --mqtt-broker localhost --mqtt-topic "sensors/#" --inject-into telemetry-out

  # Publish a single message
  nimbus inject flows/telemetry.yaml telemetry-out --payload '{"temperature": 21.5}' --attribute site=lab
"""
    )

    # Logging options, accepted by every subcommand
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file"
    )
    common.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log at DEBUG level"
    )

    # Subcommands
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # run command
    run = subparsers.add_parser('run', parents=[common], help='Run a flow until interrupted')
    run.add_argument('flow', type=Path, help='Path to flow YAML')
    run.add_argument('--mqtt-broker', help='MQTT broker host to bridge from')
    run.add_argument('--mqtt-port', type=int, default=1883, help='MQTT broker port (default: 1883)')
    run.add_argument('--mqtt-topic', default='#', help='MQTT topic filter (default: #)')
    run.add_argument('--mqtt-username', help='MQTT username')
    run.add_argument('--mqtt-password', help='MQTT password')
    run.add_argument('--inject-into', help='Node id receiving bridged MQTT messages')

    # inject command
    inject = subparsers.add_parser('inject', parents=[common], help='Deliver one message to a node and stop')
    inject.add_argument('flow', type=Path, help='Path to flow YAML')
    inject.add_argument('node_id', help='Target node id')
    inject.add_argument('--payload', required=True, help='Message payload (text)')
    inject.add_argument(
        '--attribute',
        action='append',
        default=[],
        metavar='KEY=VALUE',
        help='Message attribute (repeatable)'
    )

    # validate command
    validate = subparsers.add_parser('validate', parents=[common], help='Check a flow file')
    validate.add_argument('flow', type=Path, help='Path to flow YAML')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.log_file, args.verbose)

    try:
        if args.command == 'validate':
            return validate_flow(args.flow)

        elif args.command == 'inject':
            message = build_message(args.payload, args.attribute)
            errors = asyncio.run(inject_once(args.flow, args.node_id, message))
            return 1 if errors else 0

        elif args.command == 'run':
            bridge = None
            if args.mqtt_broker:
                if not args.inject_into:
                    parser.error("--mqtt-broker requires --inject-into")
                bridge = BridgeOptions(
                    broker=args.mqtt_broker,
                    topic=args.mqtt_topic,
                    node_id=args.inject_into,
                    port=args.mqtt_port,
                    username=args.mqtt_username,
                    password=args.mqtt_password,
                )
            return asyncio.run(FlowApp(args.flow, bridge).run())

    except (FileNotFoundError, ValueError, KeyError, NodeTypeNotAvailableError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 1


if __name__ == '__main__':
    sys.exit(main())
