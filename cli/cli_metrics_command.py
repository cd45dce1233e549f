import argparse
import json
from typing import Any, Dict, List

import requests
from colorama import init, Fore, Style
from tabulate import tabulate

from cli.cli_exit_codes import ExitCode

DEFAULT_METRICS_URL = "http://127.0.0.1:8080/metrics"


def fetch_metrics(url: str, timeout: float = 5.0) -> Dict[str, Any]:
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    return response.json()


def failure_color(successes: int, failures: int) -> str:
    """Red when failures dominate, yellow when present, green otherwise."""
    if failures and failures >= successes:
        return Fore.RED
    if failures:
        return Fore.YELLOW
    return Fore.GREEN


def format_metrics_table(snapshot: Dict[str, Any]) -> str:
    init()
    all_time = snapshot["all_time"]
    last_hour = snapshot["last_hour"]
    lines: List[str] = []

    lines.append("REQUEST METRICS")
    lines.append("===============\n")

    summary_table = [
        [window, data["total_requests"], data["successes"], data["failures"]]
        for window, data in (("All time", all_time), ("Last hour", last_hour))
    ]
    color = failure_color(all_time["successes"], all_time["failures"])
    lines.append(f"{color}SUMMARY{Style.RESET_ALL}")
    lines.append(tabulate(summary_table, headers=["Window", "Requests", "Successes", "Failures"]))
    lines.append("")

    endpoints = sorted(all_time["endpoint_hits"].items(), key=lambda item: item[1], reverse=True)
    if endpoints:
        hits_table = [
            [endpoint, hits, last_hour["endpoint_hits"].get(endpoint, 0)]
            for endpoint, hits in endpoints
        ]
        lines.append("ENDPOINT HITS")
        lines.append(tabulate(hits_table, headers=["Endpoint", "All time", "Last hour"]))

    return "\n".join(lines)


def handle_metrics_command(args: argparse.Namespace) -> int:
    """Fetches /metrics from a running server and prints it."""
    try:
        snapshot = fetch_metrics(args.url)
    except requests.RequestException as e:
        print(f"❌ Could not fetch metrics from {args.url}: {e}")
        return ExitCode.UNREACHABLE

    if args.format == "json":
        print(json.dumps(snapshot, indent=2))
    else:
        print(format_metrics_table(snapshot))

    return ExitCode.SUCCESS
