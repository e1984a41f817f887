"""Tests for the hyperv-lab CLI."""

from unittest import mock

import pytest
from typer.testing import CliRunner

from hyperv_fixtures import FakeHyperVHost
from hyperv_lab.cli import app
from hyperv_lab.config import Config
from hyperv_lab.models import HyperVError

runner = CliRunner()


@pytest.fixture
def lab_host(clean_env):
    """Fake host patched in as the CLI's Hyper-V client."""
    host = FakeHyperVHost(paths=[Config.get_host_config().iso_path])
    with mock.patch("hyperv_lab.cli.get_client", return_value=host):
        yield host


def test_apply_creates_lab(lab_host):
    """Test apply provisions the switch and all VMs."""
    result = runner.invoke(app, ["apply"])

    assert result.exit_code == 0, result.output
    assert set(lab_host.vms) == {"LAB-DC01", "LAB-SRV01", "LAB-CLIENT01"}
    assert "Lab Parameters" in result.output
    assert "Created: 3" in result.output
    assert "Lab provisioning complete" in result.output


def test_apply_is_idempotent(lab_host):
    """Test a second apply reports existing VMs and creates nothing."""
    runner.invoke(app, ["apply"])
    lab_host.calls.clear()

    result = runner.invoke(app, ["apply"])

    assert result.exit_code == 0
    assert lab_host.mutations == []
    assert "Existing: 3" in result.output


def test_apply_dry_run(lab_host):
    """Test dry run makes no changes."""
    result = runner.invoke(app, ["apply", "--dry-run"])

    assert result.exit_code == 0
    assert lab_host.mutations == []
    assert "DRY RUN MODE" in result.output
    assert "Dry run complete" in result.output


def test_apply_missing_capability_exits_1(lab_host):
    """Test a host without Hyper-V aborts with status 1."""
    lab_host.available = False

    result = runner.invoke(app, ["apply"])

    assert result.exit_code == 1
    assert lab_host.mutations == []


def test_apply_switch_failure_exits_1(lab_host):
    """Test a switch creation failure aborts with status 1."""
    lab_host.failures[("create_switch", "LabSwitch")] = HyperVError("denied")

    result = runner.invoke(app, ["apply"])

    assert result.exit_code == 1
    assert lab_host.vms == {}


def test_apply_vm_failure_keeps_exit_0(lab_host):
    """Test a per-VM failure is reported but does not fail the run."""
    lab_host.failures[("create_vm", "LAB-SRV01")] = HyperVError("no memory")

    result = runner.invoke(app, ["apply"])

    assert result.exit_code == 0
    assert "Failed: 1" in result.output
    assert "completed with errors" in result.output


def test_apply_vm_failure_strict_exits_2(lab_host):
    """Test --strict turns per-VM failures into exit status 2."""
    lab_host.failures[("create_vm", "LAB-SRV01")] = HyperVError("no memory")

    result = runner.invoke(app, ["apply", "--strict"])

    assert result.exit_code == 2


def test_apply_invalid_config_exits_1(lab_host, tmp_path):
    """Test an invalid config file aborts before touching the host."""
    config_file = tmp_path / "lab.yaml"
    config_file.write_text("generation: 5\n")

    result = runner.invoke(app, ["apply", "--config", str(config_file)])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
    assert lab_host.calls == []


def test_apply_with_config_file(lab_host, tmp_path):
    """Test the YAML config selects the VMs to create."""
    config_file = tmp_path / "lab.yaml"
    config_file.write_text("vm_names: [WEB01]\n")

    result = runner.invoke(app, ["apply", "-c", str(config_file)])

    assert result.exit_code == 0
    assert set(lab_host.vms) == {"WEB01"}


def test_status_reports_absent_and_existing(lab_host):
    """Test status shows state for existing VMs and Absent otherwise."""
    lab_host.add_vm("LAB-DC01", state="Running")

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Running" in result.output
    assert "Absent" in result.output
    assert lab_host.mutations == []


def test_status_host_error_exits_1(lab_host):
    """Test status exits 1 when the host cannot be queried."""
    lab_host.failures[("get_vm_state", "LAB-DC01")] = HyperVError("unreachable")

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 1
    assert "Failed to get status" in result.output


def test_status_queries_state_for_each_configured_vm(lab_host):
    """Test status asks the host for each VM's state and shows no action column."""
    lab_host.add_vm("LAB-SRV01", state="Off")

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert lab_host.calls_to("get_vm_state") == [("LAB-DC01",), ("LAB-SRV01",), ("LAB-CLIENT01",)]
    assert "VM Status" in result.output
    assert "Action" not in result.output
    assert "Existing" not in result.output


def test_validate_ok(lab_host):
    """Test validate passes on a ready host."""
    result = runner.invoke(app, ["validate"])

    assert result.exit_code == 0
    assert "Hyper-V is available" in result.output
    assert "Installer image found" in result.output


def test_validate_missing_image_warns(lab_host):
    """Test a missing installer image is only a warning."""
    lab_host.paths.clear()

    result = runner.invoke(app, ["validate"])

    assert result.exit_code == 0
    assert "Installer image not found" in result.output


def test_validate_missing_capability_exits_1(lab_host):
    """Test validate fails without Hyper-V."""
    lab_host.available = False

    result = runner.invoke(app, ["validate"])

    assert result.exit_code == 1
    assert "not available" in result.output
