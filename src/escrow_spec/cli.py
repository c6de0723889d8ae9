"""
Escrow spec command line.

Replays YAML scenario suites against the reference ledger and prints state
digests.
"""

import json
import logging
import os
import sys
from typing import Optional

import click
import yaml

from .fixtures_io import ledger_to_json
from .scenario import ScenarioRunner, find_suite_files, replay
from .state_digest import compute_state_digest

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "--verbose",
    is_flag=True,
    help="Enable verbose output",
)
def main(verbose: bool) -> None:
    """Escrow custody ledger tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


@main.command()
@click.argument("suites", type=click.Path(exists=True))
@click.option(
    "--result-dir",
    default=None,
    help="Directory to write results",
)
@click.option(
    "--stop-on-failure",
    is_flag=True,
    help="Stop on first scenario failure",
)
def run(suites: str, result_dir: Optional[str], stop_on_failure: bool) -> None:
    """Run scenario suites from a YAML file or directory."""
    if os.path.isfile(suites):
        suite_files = [suites]
    else:
        suite_files = find_suite_files(suites)

    if not suite_files:
        logger.error(f"No suite files found in {suites}")
        sys.exit(1)

    logger.info(f"Found {len(suite_files)} suite files")

    runner = ScenarioRunner(result_dir=result_dir, stop_on_first_failure=stop_on_failure)
    report = runner.run_all(suite_files)

    runner.reporter.write_json_report(report)
    runner.reporter.write_summary(report)
    runner.reporter.print_summary(report)

    sys.exit(0 if report.total_failed == 0 else 1)


@main.command()
@click.argument("suite", type=click.Path(exists=True, dir_okay=False))
@click.option("--name", default=None, help="Scenario name (defaults to the first)")
@click.option("--dump", is_flag=True, help="Print the exported state as JSON")
def digest(suite: str, name: Optional[str], dump: bool) -> None:
    """Replay one scenario and print its final state digest."""
    with open(suite) as f:
        scenarios = (yaml.safe_load(f) or {}).get("scenarios", [])

    matches = [s for s in scenarios if name is None or s.get("name") == name]
    if not matches:
        raise click.ClickException(f"scenario {name!r} not found in {suite}")
    scenario = matches[0]

    ledger, _ = replay(scenario)
    state = ledger_to_json(ledger)
    if dump:
        click.echo(json.dumps(state, indent=2))
    click.echo(compute_state_digest(state))


if __name__ == "__main__":
    main()
