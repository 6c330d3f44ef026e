#!/usr/bin/env python3
"""
SC Crawl - Command Line Interface.

Usage:
    # Crawl two hops out from a core switch
    python -m sccrawl crawl 10.0.0.1 -d 2 --domain example.com -o map.json

    # Options and credentials from a YAML file
    python -m sccrawl crawl core1 --config lab.yaml

    # Debug a template against a saved capture
    python -m sccrawl parse "show lldp neighbors detail" capture.txt

    # List loaded templates
    python -m sccrawl templates
"""

import argparse
import getpass
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from ..config import EdgeTieBreak, build_options, load_config
from ..creds import Credential, CredentialStore
from ..exceptions import SCCrawlError
from ..parsing import OutputParser
from .engine import DiscoveryEngine
from .events import ConsoleEventPrinter, EventEmitter

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog='sccrawl',
        description='SSH CDP/LLDP neighbor crawler',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Crawl with credentials from SC_USERNAME / SC_PASSWORD
  sccrawl crawl 10.0.0.1 -d 3 --domain example.com -o result.json

  # Prompt for a password
  sccrawl crawl 10.0.0.1 -u admin

  # Skip phones and access points
  sccrawl crawl core1 --exclude "sep,ap-"

  # Old IOS images (ssh-rsa/SHA-1 only)
  sccrawl crawl 10.0.0.1 --legacy
        """
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Logging level (default: WARNING, DEBUG with -v)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Crawl command
    crawl_parser = subparsers.add_parser('crawl', help='Breadth-first neighbor crawl')
    crawl_parser.add_argument('seeds', nargs='+', help='Seed IP addresses or hostnames')
    crawl_parser.add_argument(
        '-d', '--max-hops',
        type=int,
        dest='max_hops',
        help='Maximum hops from the seeds (default: 4)'
    )
    crawl_parser.add_argument('--config', type=Path, help='YAML config file')
    crawl_parser.add_argument(
        '--credentials',
        type=Path,
        help='YAML file with a credentials list'
    )
    crawl_parser.add_argument(
        '-u', '--username',
        help='Username; the password is prompted for'
    )
    crawl_parser.add_argument(
        '--domain',
        action='append',
        dest='domains',
        help='Domain suffix(es) for hostname resolution'
    )
    crawl_parser.add_argument(
        '--exclude',
        action='append',
        dest='exclude_patterns',
        help='Comma-separated hostname patterns to skip'
    )
    crawl_parser.add_argument(
        '--cmd',
        action='append',
        dest='commands',
        help='Discovery command (repeatable; default: CDP and LLDP detail)'
    )
    crawl_parser.add_argument('--template-dir', dest='template_dir', help='Template directory')
    crawl_parser.add_argument('--port', type=int, help='SSH port (default: 22)')
    crawl_parser.add_argument(
        '--connect-timeout',
        type=float,
        dest='connect_timeout',
        help='SSH connect timeout in seconds (default: 10)'
    )
    crawl_parser.add_argument(
        '--command-timeout',
        type=float,
        dest='command_timeout',
        help='Per-command timeout in seconds (default: 30)'
    )
    crawl_parser.add_argument(
        '--probe-timeout',
        type=float,
        dest='probe_timeout',
        help='Reachability probe timeout in seconds (default: 3)'
    )
    crawl_parser.add_argument(
        '--tie-break',
        choices=[t.value for t in EdgeTieBreak],
        dest='edge_tie_break',
        help='CDP/LLDP disagreement handling (default: merge)'
    )
    crawl_parser.add_argument(
        '--legacy',
        action='store_true',
        default=None,
        dest='legacy_mode',
        help='Allow legacy SSH algorithms'
    )
    crawl_parser.add_argument(
        '--no-dns',
        action='store_true',
        default=None,
        dest='no_dns',
        help='Disable DNS lookups, use management IPs from CDP/LLDP only'
    )
    crawl_parser.add_argument('-o', '--output', type=Path, help='Write the result as JSON')
    crawl_parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')
    crawl_parser.add_argument(
        '--no-color',
        action='store_true',
        dest='no_color',
        help='Disable colored output'
    )
    crawl_parser.add_argument('--timestamps', action='store_true', help='Show timestamps in output')
    crawl_parser.add_argument(
        '--json-events',
        action='store_true',
        dest='json_events',
        help='Output events as JSON lines'
    )

    # Parse command
    parse_parser = subparsers.add_parser('parse', help='Parse a saved capture and print records')
    parse_parser.add_argument('cli_command', metavar='COMMAND', help='Command that produced the capture')
    parse_parser.add_argument('file', type=Path, help='Capture file')
    parse_parser.add_argument('--template-dir', dest='template_dir', help='Template directory')
    parse_parser.add_argument(
        '--raw',
        action='store_true',
        help='Print template rows instead of neighbor records'
    )
    parse_parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')

    # Templates command
    templates_parser = subparsers.add_parser('templates', help='List loaded templates')
    templates_parser.add_argument('--template-dir', dest='template_dir', help='Template directory')
    templates_parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')

    return parser


class JsonEventPrinter:
    """Prints events as JSON lines, one per event."""

    def handle_event(self, event):
        output = {
            "type": event.event_type.value,
            "timestamp": event.timestamp.isoformat(),
            "data": event.data,
        }
        print(json.dumps(output, default=str), flush=True)


def setup_logging(args) -> None:
    if args.log_level:
        level = getattr(logging, args.log_level)
    elif getattr(args, 'verbose', False):
        level = logging.DEBUG
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # paramiko transport chatter drowns everything else at DEBUG
    logging.getLogger('paramiko').setLevel(max(level, logging.WARNING))


def load_credentials(args, config: Dict[str, Any]) -> CredentialStore:
    """
    Collect credentials from the config file, --credentials file, the
    environment and a prompted password for --username. Trial order is
    by priority; equal priorities keep that load order.
    """
    store = CredentialStore()
    if config.get('credentials'):
        store = store.merged(CredentialStore.from_dict(config))
    if args.credentials:
        store = store.merged(CredentialStore.from_yaml(args.credentials))
    store = store.merged(CredentialStore.from_env())

    if args.username:
        password = getpass.getpass(f"Password for {args.username}: ")
        store = store.merged(CredentialStore([
            Credential(name="prompt", username=args.username, password=password, priority=1000)
        ]))
    return store


def cmd_crawl(args) -> int:
    """Run the crawl with event-driven console output."""
    try:
        config = load_config(args.config) if args.config else {}
        options = build_options(config, {
            'max_hops': args.max_hops,
            'domains': args.domains,
            'exclude_patterns': args.exclude_patterns,
            'commands': args.commands,
            'template_dir': args.template_dir,
            'port': args.port,
            'connect_timeout': args.connect_timeout,
            'command_timeout': args.command_timeout,
            'probe_timeout': args.probe_timeout,
            'edge_tie_break': args.edge_tie_break,
            'legacy_mode': args.legacy_mode,
            'no_dns': args.no_dns,
        })
        credentials = load_credentials(args, config)
    except SCCrawlError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    if not credentials:
        print("ERROR: No credentials. Set SC_USERNAME/SC_PASSWORD, use -u, "
              "or add a credentials list to the config file.", file=sys.stderr)
        return 2

    emitter = EventEmitter()
    if args.json_events:
        emitter.subscribe(JsonEventPrinter().handle_event)
    else:
        printer = ConsoleEventPrinter(
            verbose=args.verbose,
            color=not args.no_color and sys.stdout.isatty(),
            show_timestamps=args.timestamps,
        )
        emitter.subscribe(printer.handle_event)

    try:
        engine = DiscoveryEngine(events=emitter, options=options)
    except SCCrawlError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    cancel_event = threading.Event()
    outcome: Dict[str, Any] = {}

    def worker():
        try:
            outcome['result'] = engine.run(args.seeds, credentials, cancel_event=cancel_event)
        except Exception as e:
            logger.exception("Crawl failed")
            outcome['error'] = e

    thread = threading.Thread(target=worker, name='sccrawl-crawl', daemon=True)
    thread.start()
    try:
        while thread.is_alive():
            thread.join(0.2)
    except KeyboardInterrupt:
        print("\nStopping after the current device...", file=sys.stderr)
        cancel_event.set()
        thread.join()

    if 'error' in outcome:
        print(f"ERROR: Crawl failed: {outcome['error']}", file=sys.stderr)
        return 1

    result = outcome['result']
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(result.to_json())
        if not args.json_events:
            print(f"Result saved to: {args.output}")
    elif not args.json_events:
        _print_summary(result)

    if result.cancelled:
        return 130
    return 0 if result.mapped_devices else 1


def _print_summary(result) -> None:
    print(f"{'Device':<30} {'Hop':>3}  {'Status':<12} Platform")
    for device in sorted(result.devices.values(), key=lambda d: (d.hop_distance, d.canonical_id)):
        name = device.hostname or device.canonical_id
        print(f"{name:<30} {device.hop_distance:>3}  {device.status.value:<12} {device.platform or ''}")
    if result.edges:
        print()
        for edge in result.edge_list:
            protocols = ",".join(sorted(p.value for p in edge.protocols))
            print(f"  {edge.local_device_id} {edge.local_interface} <-> "
                  f"{edge.remote_device_id} {edge.remote_interface} [{protocols}]")
    if result.boundary_peers:
        print(f"\nBeyond hop limit: {', '.join(sorted(result.boundary_peers))}")


def cmd_parse(args) -> int:
    """Parse a capture file with the loaded templates."""
    try:
        parser = OutputParser(template_dir=args.template_dir)
        text = args.file.read_text(errors='replace')
    except (SCCrawlError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    result = parser.parse_records(text, args.cli_command)
    if not result.success:
        print(f"No records: {result.error}", file=sys.stderr)
        return 1

    print(f"# {result.template_name} ({result.method.value}): {result.record_count} records",
          file=sys.stderr)
    if args.raw:
        print(json.dumps(result.records, indent=2))
    else:
        records = parser.parse(text, args.cli_command)
        print(json.dumps([r.to_dict() for r in records], indent=2))
    return 0


def cmd_templates(args) -> int:
    """List loaded templates per command."""
    try:
        parser = OutputParser(template_dir=args.template_dir)
    except SCCrawlError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        if getattr(e, 'errors', None):
            for err in e.errors:
                print(f"  - {err}", file=sys.stderr)
        return 2

    registry = parser.registry
    print(f"Template directory: {registry.source}")
    for command in registry.commands:
        print(f"\n{command}")
        for template in registry.templates_for(command):
            print(f"  [{template.method.value}] {template.name}")
    if registry.errors:
        print("\nLoad errors:")
        for err in registry.errors:
            print(f"  - {err}")
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args)

    if args.command == 'crawl':
        return cmd_crawl(args)
    elif args.command == 'parse':
        return cmd_parse(args)
    elif args.command == 'templates':
        return cmd_templates(args)
    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())
