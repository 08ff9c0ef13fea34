"""CLI entrypoint for kube-secret-poller."""
import sys
import signal
import asyncio
import argparse
import logging
from pathlib import Path

from .validators import validate_namespace, validate_secret_name

VERSION = "0.1.0"

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _set_verbosity(verbose: int) -> None:
    if verbose >= 2:
        logging.getLogger().setLevel(logging.DEBUG)
    elif verbose == 1:
        logging.getLogger().setLevel(logging.INFO)


def cmd_version(args):
    """Show version information."""
    print(f"kube-secret-poller {VERSION}")


def cmd_config_set_path(args):
    """Set config file path preference."""
    from kube_secret_poller.poller.domains.preferences import set_preference

    config_path = Path(args.path).resolve()

    if not config_path.is_file():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    set_preference("config_path", str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_show(args):
    """Show current config file path."""
    from kube_secret_poller.poller.domains.preferences import get_preference
    from kube_secret_poller.poller.domains.config_loader import default_config_path

    config_path_pref = get_preference("config_path")

    if config_path_pref:
        config_path = Path(config_path_pref)
        source = "preference"
    else:
        config_path = default_config_path()
        source = "default"

    suffix = "" if config_path.exists() else " (file not found)"
    print(f"Config path: {config_path}")
    print(f"Source: {source}{suffix}")


def cmd_config_clear(args):
    """Clear config path preference."""
    from kube_secret_poller.poller.domains.preferences import clear_preference
    from kube_secret_poller.poller.domains.config_loader import default_config_path

    clear_preference("config_path")
    print(f"Config path preference cleared. Will use default: {default_config_path()}")


async def run_pollers(config, force_poll=False, stop_event=None, store=None, backends=None, metrics=None):
    """
    Start one poller per configured secret and wait until stop_event is set.

    All pollers are stopped on the way out, including on cancellation.
    """
    from kube_secret_poller.poller.domains.backends import build_backends
    from kube_secret_poller.poller.domains.config_loader import get_descriptors, get_owner_reference
    from kube_secret_poller.poller.domains.kube_client import KubeSecretStore
    from kube_secret_poller.poller.domains.metrics import get_sync_metrics
    from kube_secret_poller.poller.workflows.poller import Poller

    settings = config["poller"]
    if backends is None:
        backends = build_backends(config["backends"])
    if store is None:
        store = KubeSecretStore(kubeconfig=(config.get("kubernetes") or {}).get("kubeconfig"))

    if metrics is None:
        metrics = get_sync_metrics()
    metrics.serve(settings.get("metrics_port", 0))

    owner_reference = get_owner_reference(config)
    pollers = [
        Poller(
            backends=backends,
            interval_ms=settings["interval_ms"],
            store=store,
            namespace=settings["namespace"],
            descriptor=descriptor,
            owner_reference=owner_reference,
            metrics=metrics,
        )
        for descriptor in get_descriptors(config)
    ]

    if stop_event is None:
        stop_event = asyncio.Event()
        try:
            asyncio.get_running_loop().add_signal_handler(signal.SIGTERM, stop_event.set)
        except NotImplementedError:
            logger.debug("Signal handlers not supported on this platform")

    logger.info(f"Starting {len(pollers)} poller(s) in namespace {settings['namespace']}")
    for poller in pollers:
        poller.start(force_poll=force_poll)

    try:
        await stop_event.wait()
    finally:
        for poller in pollers:
            poller.stop()
        logger.info("Pollers stopped")


def cmd_run(args):
    """Run pollers for every configured secret until interrupted."""
    from kube_secret_poller.poller.domains.config_loader import load_config

    config = load_config(args.config)
    asyncio.run(run_pollers(config, force_poll=args.force_poll))


def cmd_sync(args):
    """Synchronize a single configured secret once."""
    from kube_secret_poller.poller.domains.backends import build_backends
    from kube_secret_poller.poller.domains.config_loader import (
        get_descriptors,
        get_owner_reference,
        load_config,
    )
    from kube_secret_poller.poller.domains.kube_client import KubeSecretStore
    from kube_secret_poller.poller.workflows.upsert import upsert_secret

    validate_secret_name(args.secret_name)
    config = load_config(args.config)

    matches = [d for d in get_descriptors(config) if d.name == args.secret_name]
    if not matches:
        print(f"Error: Secret '{args.secret_name}' is not defined in the config", file=sys.stderr)
        sys.exit(1)

    namespace = config["poller"]["namespace"]
    store = KubeSecretStore(kubeconfig=(config.get("kubernetes") or {}).get("kubeconfig"))
    asyncio.run(upsert_secret(
        matches[0],
        namespace,
        store=store,
        backends=build_backends(config["backends"]),
        owner_reference=get_owner_reference(config),
    ))
    print(f"Secret '{args.secret_name}' synchronized in {namespace}")


def cmd_check_permission(args):
    """Check whether a role may be assumed in a namespace."""
    from kube_secret_poller.poller.domains.kube_client import KubeSecretStore
    from kube_secret_poller.poller.domains.permissions import evaluate_permission

    validate_namespace(args.namespace)
    store = KubeSecretStore(kubeconfig=args.kubeconfig)
    annotations = asyncio.run(store.read_namespace_annotations(args.namespace))
    result = evaluate_permission(
        annotations,
        args.role,
        secret_name=args.secret_name or "",
        namespace=args.namespace,
    )

    if result.allowed:
        print(f"Allowed: {result.reason}")
        sys.exit(0)
    print(f"Denied: {result.reason}", file=sys.stderr)
    sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kube-secret-poller",
        description="Keep Kubernetes Secrets in sync with external secret backends",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (configuration, Kubernetes API, backend, permission denied)
  2 - Usage error (invalid arguments, invalid secret name format, etc.)

Environment variables:
  KUBE_SECRET_POLLER_CONFIG    - Config file path (overrides preference/default)
  POLLER_INTERVAL_MILLISECONDS - Poll interval (overrides config file)
  GCP_PROJECT                  - GCP project ID for the gcp backend

Configuration:
  Default location: ~/.config/kube-secret-poller/config.yml
  Custom path: Set with 'kube-secret-poller config set-path <path>'
        """
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _version_parser = subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of kube-secret-poller"
    )

    run_parser = subparsers.add_parser(
        "run",
        help="Poll all configured secrets",
        description="""
Start one poller per secret in the config and keep running until interrupted.

On start each poller reads the last-poll annotation of its Secret and waits
out the rest of the interval; missing Secrets are polled right away.
        """
    )
    run_parser.add_argument("--config", help="Path to config file")
    run_parser.add_argument(
        "--force-poll",
        action="store_true",
        help="Poll every secret right away, ignoring the last-poll annotation"
    )

    sync_parser = subparsers.add_parser(
        "sync",
        help="Synchronize one secret once",
        description="Fetch one configured secret from its backend and create or replace it"
    )
    sync_parser.add_argument("secret_name", help="Name of a secret defined in the config")
    sync_parser.add_argument("--config", help="Path to config file")

    check_parser = subparsers.add_parser(
        "check-permission",
        help="Check role permission for a namespace",
        description="""
Evaluate the iam.amazonaws.com/permitted annotation of a namespace against a role.

Exit codes:
  0 - Role allowed
  1 - Role denied, annotation invalid, or namespace lookup failed
        """
    )
    check_parser.add_argument("--namespace", required=True, help="Namespace to check")
    check_parser.add_argument("--role", required=True, help="Role ARN to evaluate")
    check_parser.add_argument("--secret-name", help="Secret name shown in the result")
    check_parser.add_argument("--kubeconfig", help="Path to kubeconfig (defaults to in-cluster/default)")

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage kube-secret-poller configuration"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")

    config_set_path_parser = config_subparsers.add_parser(
        "set-path",
        help="Set config file path",
        description="Store the config file path in ~/.config/kube-secret-poller/preferences.json"
    )
    config_set_path_parser.add_argument("path", help="Path to config file")

    _config_show_parser = config_subparsers.add_parser(
        "show",
        help="Show current config path",
        description="Display the current configuration file path and its source"
    )

    _config_clear_parser = config_subparsers.add_parser(
        "clear",
        help="Clear config path preference",
        description="Remove the config path preference and fall back to the default location"
    )

    return parser


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (configuration, Kubernetes API, backend, permission denied)
        2 - Usage errors (invalid arguments, invalid secret name format, etc.)
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _set_verbosity(args.verbose)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    try:
        if args.command == "version":
            cmd_version(args)
        elif args.command == "run":
            cmd_run(args)
        elif args.command == "sync":
            cmd_sync(args)
        elif args.command == "check-permission":
            cmd_check_permission(args)
        elif args.command == "config":
            if args.config_command == "set-path":
                cmd_config_set_path(args)
            elif args.config_command == "show":
                cmd_config_show(args)
            elif args.config_command == "clear":
                cmd_config_clear(args)
            else:
                parser.print_help()
                sys.exit(2)
        else:
            parser.print_help()
            sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
