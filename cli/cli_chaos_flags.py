import argparse
from typing import Any, Dict


def add_chaos_args(parser: argparse.ArgumentParser) -> argparse._ArgumentGroup:
    """
    Adds CLI arguments that override the chaos section of the settings.

    Args:
        parser: The argparse parser instance.

    Returns:
        The argument group added for chaos overrides.
    """
    chaos_group = parser.add_argument_group("Chaos Injection")

    chaos_group.add_argument(
        "--chaos",
        metavar="MODES",
        help="Comma-separated chaos modes to enable: failure, delay, corruption"
    )
    chaos_group.add_argument("--chaos-failure-rate", type=float, metavar="RATE")
    chaos_group.add_argument(
        "--chaos-failure-codes",
        metavar="CODES",
        help="Comma-separated status codes to fail with, e.g. 500,503"
    )
    chaos_group.add_argument("--chaos-delay-rate", type=float, metavar="RATE")
    chaos_group.add_argument(
        "--chaos-delay-ms",
        metavar="MS",
        help="Fixed delay in milliseconds, or 'random'"
    )
    chaos_group.add_argument("--chaos-delay-max-ms", type=int, metavar="MS")
    chaos_group.add_argument("--chaos-corruption-rate", type=float, metavar="RATE")
    chaos_group.add_argument(
        "--chaos-corruption-type",
        choices=["empty", "truncate", "garbage"]
    )
    chaos_group.add_argument(
        "--no-chaos-header",
        action="store_true",
        help="Do not report applied faults in the X-Chaos response header"
    )

    return chaos_group


CHAOS_FLAG_FIELDS = {
    "chaos": "modes",
    "chaos_failure_rate": "failure_rate",
    "chaos_failure_codes": "failure_codes",
    "chaos_delay_rate": "delay_rate",
    "chaos_delay_ms": "delay_ms",
    "chaos_delay_max_ms": "delay_max_ms",
    "chaos_corruption_rate": "corruption_rate",
    "chaos_corruption_type": "corruption_type",
}


def chaos_overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Collects the chaos flags that were actually given on the command line.

    Returns:
        dict: Partial chaos settings, suitable for ConfigLoader overrides.
    """
    overrides = {}
    for attr, field_name in CHAOS_FLAG_FIELDS.items():
        value = getattr(args, attr, None)
        if value is not None:
            overrides[field_name] = value

    if getattr(args, "no_chaos_header", False):
        overrides["inform_header"] = False

    return overrides
