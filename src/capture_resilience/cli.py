"""CLI for inspecting resilience settings.

Provides commands to list retry presets, preview backoff schedules and
classify failure messages.
"""

from __future__ import annotations

import json
import logging
import sys

import click

from .classifier import ErrorClassifier
from .config import ResilienceConfig, resolve_config
from .errors import UnknownPolicyError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def cli(verbose: bool) -> None:
    """Capture resilience - retry, circuit breaker and rate limit tooling."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _load(config_path: str | None) -> ResilienceConfig:
    try:
        return resolve_config(config_path)
    except (FileNotFoundError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--config", "config_path", type=click.Path(), help="Path to resilience.toml")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def policies(config_path: str | None, as_json: bool) -> None:
    """List the effective retry presets."""
    config = _load(config_path)
    table = config.policy_table()

    if as_json:
        data = {name: policy.to_mapping() for name, policy in table.items()}
        click.echo(json.dumps(data, indent=2))
        return

    click.echo("\n" + "=" * 60)
    click.echo("Retry Strategies")
    click.echo("=" * 60)
    for name, policy in table.items():
        click.echo(
            f"  {name}: attempts={policy.max_attempts} "
            f"delay={policy.initial_delay:g}s "
            f"x{policy.backoff_multiplier:g} "
            f"max={policy.max_delay:g}s"
        )

    breaker = config.circuit_breaker
    click.echo(
        f"\nCircuit breaker: threshold={breaker.failure_threshold} "
        f"reset={breaker.reset_timeout:g}s "
        f"monitoring={breaker.monitoring_period:g}s"
    )
    rate = config.rate_limit
    click.echo(f"Rate limit: {rate.requests_per_window} per {rate.window:g}s")


@cli.command()
@click.argument("name")
@click.option("--config", "config_path", type=click.Path(), help="Path to resilience.toml")
def backoff(name: str, config_path: str | None) -> None:
    """Show the delay schedule for preset NAME."""
    config = _load(config_path)
    try:
        policy = config.policy_table().get(name)
    except UnknownPolicyError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    schedule = policy.schedule()
    if not schedule:
        click.echo(f"{name}: single attempt, no retries")
        return

    total = 0.0
    for attempt, delay in enumerate(schedule, start=1):
        total += delay
        click.echo(f"  after attempt {attempt}: wait {delay:g}s (cumulative {total:g}s)")


@cli.command()
@click.argument("message")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def classify(message: str, as_json: bool) -> None:
    """Classify a failure MESSAGE."""
    classifier = ErrorClassifier()
    classified = classifier.classify(Exception(message))

    if as_json:
        click.echo(
            json.dumps(
                {
                    "category": classified.category.value,
                    "retryable": classified.retryable,
                }
            )
        )
        return

    verdict = "retryable" if classified.retryable else "not retryable"
    click.echo(f"{classified.category.value} ({verdict})")


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
