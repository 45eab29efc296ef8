"""
Command-Line Interface for the activity-threshold proof toolkit.

Provides commands to create development artifacts, generate and verify
proofs, and manage the local artifact cache.
"""

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import click
import trio
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from activity_zk import __version__, print_disclaimer
from activity_zk.artifact_cache import ArtifactCache, CacheConfig
from activity_zk.threshold_proof.adapters.reference_backend import ReferenceBackend
from activity_zk.threshold_proof.circuit_registry import (
    all_circuit_configs,
    circuit_summary,
    get_circuit_config,
)
from activity_zk.threshold_proof.exceptions import ActivityProofError
from activity_zk.threshold_proof.factory import get_proving_backend
from activity_zk.threshold_proof.orchestrator import ProofOrchestrator
from activity_zk.threshold_proof.snark.assets import ArtifactLoader, write_artifacts
from activity_zk.threshold_proof.types import ProofRecord
from activity_zk.threshold_proof.witness import assemble

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=verbose)],
        force=True,
    )


def _fail(message: str, verbose: bool) -> None:
    click.echo(click.style(f"\n✗ Error: {message}", fg="red"), err=True)
    if verbose:
        console.print_exception()
    sys.exit(1)


def _open_cache(cache_dir: Optional[str], no_cache: bool) -> Optional[ArtifactCache]:
    if no_cache:
        return None
    config = CacheConfig.from_env(Path(cache_dir) if cache_dir else None)
    return ArtifactCache.from_config(config)


def _read_timestamps(activity: Optional[str], timestamps: List[int]) -> List[int]:
    values = list(timestamps)
    if activity:
        data = json.loads(Path(activity).read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise click.BadParameter("activity file must contain a JSON array", param_hint="--activity")
        values.extend(data)
    if not values:
        raise click.UsageError("provide activity with --activity or --timestamp")
    return values


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx, verbose):
    """
    Activity-threshold zero-knowledge proofs.

    Prove activity on at least N distinct days, anchored to a Merkle root,
    without revealing which days.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _configure_logging(verbose)


@main.command()
def circuits():
    """List registered circuits."""
    table = Table(title="Registered circuits")
    for column in ("id", "version", "slots", "depth", "constraints", "est. seconds"):
        table.add_column(column)
    for config in all_circuit_configs():
        summary = circuit_summary(config)
        table.add_row(
            config.id,
            config.version,
            str(config.max_slots),
            str(config.merkle_depth),
            f"{config.estimated_constraints:,}",
            f"{summary['estimated_seconds']:.1f}",
        )
    console.print(table)


@main.command()
@click.option("--circuit", default="verified-builder", show_default=True, help="Circuit id")
@click.option("--artifacts-dir", type=click.Path(file_okay=False), help="Artifact directory")
@click.pass_context
def setup(ctx, circuit, artifacts_dir):
    """
    Write development artifacts for the reference backend.

    Examples:

        activity-zk setup --artifacts-dir ./circuits/artifacts
    """
    verbose = ctx.obj["verbose"]
    try:
        config = get_circuit_config(circuit)
        written = write_artifacts(config, ReferenceBackend.setup(config), artifacts_dir)
    except (ActivityProofError, OSError) as e:
        _fail(str(e), verbose)
        return

    click.echo(click.style(f"✓ Reference artifacts for {config.id} v{config.version}", fg="green"))
    for kind, path in written.items():
        click.echo(f"  {kind:<12} {path}")
    click.echo(click.style("⚠️  Reference artifacts are for development only", fg="yellow"))


@main.command()
@click.option("--activity", type=click.Path(exists=True, dir_okay=False), help="JSON array of timestamps")
@click.option("--timestamp", "-t", "timestamps", type=int, multiple=True, help="Activity timestamp (repeatable)")
@click.option("--threshold", type=int, required=True, help="Minimum number of active days")
@click.option("--circuit", default="verified-builder", show_default=True, help="Circuit id")
@click.option("--backend", type=click.Choice(["reference", "snarkjs"]), help="Proving backend")
@click.option("--artifacts-dir", type=click.Path(file_okay=False), help="Artifact directory")
@click.option("--cache-dir", type=click.Path(file_okay=False), help="Artifact cache directory")
@click.option("--no-cache", is_flag=True, help="Bypass the artifact cache")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the proof record as JSON")
@click.pass_context
def prove(ctx, activity, timestamps, threshold, circuit, backend, artifacts_dir, cache_dir, no_cache, output):
    """
    Generate an activity-threshold proof.

    Examples:

        activity-zk prove --activity days.json --threshold 3 -o proof.json
    """
    verbose = ctx.obj["verbose"]
    try:
        values = _read_timestamps(activity, list(timestamps))
        config = get_circuit_config(circuit)
        witness = assemble(
            values,
            threshold=threshold,
            max_slots=config.max_slots,
            depth=config.merkle_depth,
        )
        orchestrator = ProofOrchestrator(
            get_proving_backend(prefer=backend),
            circuit=config,
            loader=ArtifactLoader(_open_cache(cache_dir, no_cache), artifacts_dir),
        )
        record = trio.run(orchestrator.generate, witness)
    except click.ClickException:
        raise
    except (ActivityProofError, OSError, ValueError) as e:
        _fail(str(e), verbose)
        return

    click.echo(click.style(f"✓ Proof {record.id} ({record.status.value})", fg="green"))
    click.echo(f"  Active days: {witness.active_count}")
    click.echo(f"  Threshold:   {threshold}")
    met = "yes" if record.meets_threshold else "no"
    click.echo(f"  Meets threshold: {met}")

    payload = json.dumps(record.to_dict(), indent=2)
    if output:
        Path(output).write_text(payload, encoding="utf-8")
        click.echo(click.style(f"✓ Proof saved to: {output}", fg="green"))
    else:
        click.echo(payload)


@main.command()
@click.argument("proof_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--backend", type=click.Choice(["reference", "snarkjs"]), help="Proving backend")
@click.option("--artifacts-dir", type=click.Path(file_okay=False), help="Artifact directory")
@click.option("--cache-dir", type=click.Path(file_okay=False), help="Artifact cache directory")
@click.option("--no-cache", is_flag=True, help="Bypass the artifact cache")
@click.pass_context
def verify(ctx, proof_file, backend, artifacts_dir, cache_dir, no_cache):
    """Verify a proof record written by ``prove``. Exits 1 if invalid."""
    verbose = ctx.obj["verbose"]
    try:
        record = ProofRecord.from_dict(json.loads(Path(proof_file).read_text(encoding="utf-8")))
        orchestrator = ProofOrchestrator(
            get_proving_backend(prefer=backend),
            circuit=get_circuit_config(record.circuit),
            loader=ArtifactLoader(_open_cache(cache_dir, no_cache), artifacts_dir),
        )
        result = trio.run(orchestrator.verify_locally, record)
    except (ActivityProofError, OSError, ValueError) as e:
        _fail(str(e), verbose)
        return

    if result.is_valid:
        click.echo(click.style(f"✓ Proof {record.id} is valid", fg="green"))
        met = "yes" if result.meets_threshold else "no"
        click.echo(f"  Meets threshold: {met}")
    else:
        click.echo(click.style(f"✗ Proof {record.id} is invalid: {result.reason}", fg="red"))
        sys.exit(1)


@main.group()
def cache():
    """Inspect and manage the artifact cache."""
    pass


@cache.command()
@click.option("--cache-dir", type=click.Path(file_okay=False), help="Artifact cache directory")
def stats(cache_dir):
    """Show cached artifact counts and sizes."""
    store = _open_cache(cache_dir, False)
    result = trio.run(store.get_stats)
    table = Table(title=f"Artifact cache: {store.root_dir}")
    table.add_column("kind")
    table.add_column("entries", justify="right")
    table.add_column("bytes", justify="right")
    table.add_row("binary", str(result.binary_count), f"{result.binary_size:,}")
    table.add_row("vkey", str(result.vkey_count), f"{result.vkey_size:,}")
    console.print(table)
    console.print(f"Binary budget: {store.max_binary_bytes:,} bytes")


@cache.command()
@click.option("--cache-dir", type=click.Path(file_okay=False), help="Artifact cache directory")
def clear(cache_dir):
    """Remove every cached artifact."""
    store = _open_cache(cache_dir, False)
    removed = trio.run(store.clear)
    click.echo(click.style(f"✓ Removed {removed} cached artifacts", fg="green"))


@cache.command()
@click.argument("circuit")
@click.option("--cache-dir", type=click.Path(file_okay=False), help="Artifact cache directory")
def invalidate(circuit, cache_dir):
    """Remove every cached version of CIRCUIT."""
    store = _open_cache(cache_dir, False)
    removed = trio.run(store.invalidate_circuit, circuit)
    click.echo(click.style(f"✓ Removed {removed} cached artifacts for {circuit}", fg="green"))


@main.command()
def version():
    """Show version and disclaimer information."""
    click.echo(f"\nactivity-zk v{__version__}")
    print_disclaimer()


if __name__ == "__main__":
    main()
