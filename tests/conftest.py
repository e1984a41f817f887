"""Shared test fixtures and configuration for hyperv_lab tests."""

from unittest import mock

import pytest

from hyperv_fixtures import FakeChannel, FakeHyperVHost
from hyperv_lab.config import GIB, HostConfig


@pytest.fixture
def host_config() -> HostConfig:
    """Lab configuration matching the shipped defaults."""
    return HostConfig(
        switch_name="LabSwitch",
        vm_names=("LAB-DC01", "LAB-SRV01", "LAB-CLIENT01"),
        vm_path=r"C:\Hyper-V\VMs",
        vhd_path=r"C:\Hyper-V\VHDs",
        iso_path=r"C:\ISO\WindowsServer2022.iso",
        memory_bytes=4 * GIB,
        processor_count=2,
        disk_bytes=60 * GIB,
        generation=2,
    )


@pytest.fixture
def fake_host(host_config) -> FakeHyperVHost:
    """Hyper-V host with the installer image present and nothing provisioned."""
    return FakeHyperVHost(paths=[host_config.iso_path])


@pytest.fixture
def mock_env(monkeypatch):
    """Set up a complete HYPERV_* environment."""
    env_vars = {
        "HYPERV_SWITCH_NAME": "TestSwitch",
        "HYPERV_VM_NAMES": "TEST-01, TEST-02 ,TEST-03",
        "HYPERV_VM_PATH": r"D:\VMs",
        "HYPERV_VHD_PATH": r"D:\VHDs",
        "HYPERV_ISO_PATH": r"D:\ISO\install.iso",
        "HYPERV_MEMORY_GB": "8",
        "HYPERV_PROCESSOR_COUNT": "4",
        "HYPERV_DISK_GB": "100",
        "HYPERV_GENERATION": "2",
    }

    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)

    return env_vars


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every HYPERV_* variable so defaults apply."""
    for key in [
        "HYPERV_SWITCH_NAME",
        "HYPERV_VM_NAMES",
        "HYPERV_VM_PATH",
        "HYPERV_VHD_PATH",
        "HYPERV_ISO_PATH",
        "HYPERV_MEMORY_GB",
        "HYPERV_PROCESSOR_COUNT",
        "HYPERV_DISK_GB",
        "HYPERV_GENERATION",
        "HYPERV_HOST",
    ]:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def mock_ssh_client():
    """Mock SSH client for testing remote PowerShell execution."""
    with mock.patch("hyperv_lab.powershell.paramiko.SSHClient") as mock_ssh:
        client = mock.MagicMock()
        mock_ssh.return_value = client

        stdout = mock.MagicMock()
        stderr = mock.MagicMock()
        stdout.channel = FakeChannel(stdout=[b"command output\r\n"])

        client.exec_command.return_value = (None, stdout, stderr)

        yield client
