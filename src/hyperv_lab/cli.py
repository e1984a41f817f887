#!/usr/bin/env python3
"""
Hyper-V lab CLI - create the lab switch and VMs, then report their state.

    hyperv-lab apply             # Create whatever is missing
    hyperv-lab apply --dry-run   # Show what would be created
    hyperv-lab status            # Show configured VMs and their power state
    hyperv-lab validate          # Check config, Hyper-V and installer image

Defaults come from the environment (.env supported); --config overlays a YAML file.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from hyperv_lab.config import GIB, HostConfig, load_host_config
from hyperv_lab.hyperv_api import HyperVClient
from hyperv_lab.models import (
    CapabilityMissingError,
    HyperVLabError,
    SwitchProvisioningError,
    VMOutcome,
    VMResult,
)
from hyperv_lab.provisioner import Provisioner

app = typer.Typer(
    name="hyperv-lab",
    help="Provision a Hyper-V lab switch and VMs",
    add_completion=False,
)
console = Console()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)8s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="YAML file overriding environment defaults")
HOST_OPTION = typer.Option(None, "--host", "-H", help="Remote Hyper-V host to reach over SSH")

OUTCOME_LABELS = {
    VMOutcome.CREATED: "🆕 Created",
    VMOutcome.SKIPPED: "✅ Existing",
    VMOutcome.FAILED: "❌ Failed",
    VMOutcome.PLANNED: "🔍 Planned",
}


def get_config(config_file: Optional[Path]) -> HostConfig:
    """Load config or exit with status 1."""
    try:
        return load_host_config(config_file)
    except HyperVLabError as e:
        console.print(f"❌ Invalid configuration: {e}")
        raise typer.Exit(1)


def get_client(host: Optional[str]) -> HyperVClient:
    """Get a Hyper-V client for the given (or configured) host."""
    return HyperVClient(host=host)


def parameters_table(config: HostConfig) -> Table:
    """Render the configured run parameters."""
    table = Table(title="Lab Parameters")
    table.add_column("Parameter", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Switch", config.switch_name)
    table.add_row("VM count", str(len(config.vm_names)))
    table.add_row("VM names", ", ".join(config.vm_names))
    table.add_row("Memory", f"{config.memory_bytes / GIB:g} GB (dynamic, min 2 GB)")
    table.add_row("Processors", str(config.processor_count))
    table.add_row("Disk size", f"{config.disk_bytes / GIB:g} GB (dynamic)")
    table.add_row("Generation", str(config.generation))
    return table


def vm_table(results: List[VMResult], title: str = "Virtual Machines") -> Table:
    """Render per-VM outcome and power state."""
    table = Table(title=title)
    table.add_column("VM", style="blue")
    table.add_column("Action", style="yellow")
    table.add_column("State", style="bold")
    table.add_column("Details")

    for result in results:
        table.add_row(result.name, OUTCOME_LABELS[result.outcome], result.state or "Absent", result.error or "")
    return table


def state_table(states: List[Tuple[str, Optional[str]]], title: str = "VM Status") -> Table:
    """Render (name, power state) pairs; a None state means the VM does not exist."""
    table = Table(title=title)
    table.add_column("VM", style="blue")
    table.add_column("State", style="bold")

    for name, state in states:
        table.add_row(name, state or "Absent")
    return table


@app.command("apply")
def apply_lab(
    config_file: Optional[Path] = CONFIG_OPTION,
    host: Optional[str] = HOST_OPTION,
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be created without creating it"),
    strict: bool = typer.Option(False, "--strict", help="Exit with status 2 if any VM failed"),
) -> None:
    """
    Create the lab switch and VMs that do not exist yet.

    Existing switches and VMs are never modified. A failing VM is reported
    and the remaining VMs are still provisioned.
    """
    config = get_config(config_file)

    if dry_run:
        console.print("🔍 DRY RUN MODE - No changes will be made\n")

    try:
        report = Provisioner(get_client(host), config, dry_run=dry_run).run()
    except CapabilityMissingError as e:
        console.print(f"❌ {e}")
        raise typer.Exit(1)
    except SwitchProvisioningError as e:
        console.print(f"❌ {e}")
        raise typer.Exit(1)
    except HyperVLabError as e:
        console.print(f"❌ Provisioning aborted: {e}")
        logger.exception("Apply error")
        raise typer.Exit(1)

    console.print(parameters_table(config))
    console.print(vm_table(report.vms))

    console.print("\n" + "=" * 70)
    console.print("[bold]Summary:[/bold]")
    console.print(f"  Switch {report.switch.name}: {'created' if report.switch.created else 'unchanged'}")
    console.print(f"  🆕 Created: {len(report.created)}")
    console.print(f"  ✅ Existing: {len(report.skipped)}")
    console.print(f"  ❌ Failed: {len(report.failed)}")
    console.print("=" * 70)

    if not report.success:
        console.print("\n❌ Lab provisioning completed with errors")
        if strict:
            raise typer.Exit(2)
    elif dry_run:
        console.print("\n✅ Dry run complete - no changes made")
    else:
        console.print("\n✅ Lab provisioning complete!")


@app.command("status")
def show_status(
    config_file: Optional[Path] = CONFIG_OPTION,
    host: Optional[str] = HOST_OPTION,
) -> None:
    """Show configured parameters and each VM's power state. Changes nothing."""
    config = get_config(config_file)

    try:
        client = get_client(host)
        states = [(name, client.get_vm_state(name)) for name in config.vm_names]
    except HyperVLabError as e:
        console.print(f"\n❌ Failed to get status: {e}")
        logger.exception("Status error")
        raise typer.Exit(1)

    console.print(parameters_table(config))
    console.print(state_table(states))


@app.command("validate")
def validate_lab(
    config_file: Optional[Path] = CONFIG_OPTION,
    host: Optional[str] = HOST_OPTION,
) -> None:
    """
    Validate configuration and host readiness without making changes.

    Checks:
    - Configuration values
    - Hyper-V management capability
    - Installer image presence (warning only)
    """
    config = get_config(config_file)
    console.print("✅ Configuration is valid")
    console.print(parameters_table(config))

    try:
        client = get_client(host)
        if not client.is_available():
            console.print("❌ Hyper-V management cmdlets are not available")
            raise typer.Exit(1)
        console.print("✅ Hyper-V is available")

        if client.path_exists(config.iso_path):
            console.print(f"✅ Installer image found: {config.iso_path}")
        else:
            console.print(f"⚠️  Installer image not found: {config.iso_path}")
    except HyperVLabError as e:
        console.print(f"\n❌ Validation failed: {e}")
        raise typer.Exit(1)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """
    Hyper-V lab provisioning.

    Creates an internal switch and a fixed set of VMs, skipping anything that
    already exists.
    """
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
    elif verbose:
        logging.getLogger().setLevel(logging.INFO)


if __name__ == "__main__":
    app()
