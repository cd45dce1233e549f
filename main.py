import argparse
import sys

from cli.cli_chaos_flags import add_chaos_args
from cli.cli_metrics_command import DEFAULT_METRICS_URL, handle_metrics_command
from cli.cli_serve_command import handle_serve_command
from cli.cli_validator import handle_check_config


# --- CLI Setup ---
def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="🔧 Rucho: HTTP echo server with chaos injection and usage metrics",
        epilog="""Examples:
  rucho serve --port 8080
  rucho serve --config rucho.yaml --chaos failure,delay --chaos-failure-rate 0.1 --chaos-failure-codes 500,503
  rucho check-config --config rucho.yaml --format json
  rucho metrics --url http://127.0.0.1:8080/metrics""",
        formatter_class=argparse.RawTextHelpFormatter
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="Available Commands",
        metavar="{serve, check-config, metrics}"
    )

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the echo server")
    serve_parser.add_argument("--config", type=str, help="Path to a YAML settings file")
    serve_parser.add_argument("--host", type=str)
    serve_parser.add_argument("--port", type=int)
    serve_parser.add_argument("--verbose", action="store_true")
    add_chaos_args(serve_parser)
    serve_parser.set_defaults(func=handle_serve_command)

    # check-config
    check_parser = subparsers.add_parser("check-config", help="Validate and print the effective settings")
    check_parser.add_argument("--config", type=str, help="Path to a YAML settings file")
    check_parser.add_argument("--format", choices=["yaml", "json"], default="yaml")
    check_parser.add_argument("--verbose", action="store_true")
    check_parser.set_defaults(func=handle_check_config)

    # metrics
    metrics_parser = subparsers.add_parser("metrics", help="Show request metrics from a running server")
    metrics_parser.add_argument("--url", default=DEFAULT_METRICS_URL)
    metrics_parser.add_argument("--format", choices=["table", "json"], default="table")
    metrics_parser.set_defaults(func=handle_metrics_command)

    return parser


def main():
    parser = create_parser()
    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    exit_code = args.func(args)
    sys.exit(int(exit_code))


if __name__ == "__main__":
    main()
