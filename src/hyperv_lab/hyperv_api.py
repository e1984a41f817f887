"""Hyper-V management operations expressed as PowerShell cmdlet calls."""

import json
import logging
from typing import Any, Dict, Optional

from hyperv_lab.models import HyperVError
from hyperv_lab.powershell import get_runner, quote

logger = logging.getLogger(__name__)

REQUIRED_CMDLETS = ("New-VM", "New-VMSwitch", "New-VHD", "Set-VMFirmware")


class HyperVClient:
    """Wrapper around the Hyper-V PowerShell module."""

    def __init__(self, runner: Any = None, host: Optional[str] = None) -> None:
        self.runner = runner or get_runner(host)

    def _run(self, script: str) -> str:
        return self.runner.run(script)

    def _find(self, script: str, name: str) -> Optional[Dict[str, Any]]:
        """Run a lookup piped to ConvertTo-Json and return the object named exactly `name`."""
        output = self._run(script)
        if not output:
            return None
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise HyperVError(f"Unexpected output from Hyper-V: {output!r}") from e
        items = data if isinstance(data, list) else [data]
        # Hyper-V object names compare case-insensitively
        for item in items:
            if isinstance(item, dict) and str(item.get("Name", "")).lower() == name.lower():
                return item
        return None

    # Host capability

    def is_available(self) -> bool:
        """Check if the Hyper-V management cmdlets are installed on the host."""
        names = ", ".join(REQUIRED_CMDLETS)
        script = f"@(Get-Command -Name {names} -ErrorAction SilentlyContinue).Count"
        try:
            count = int(self._run(script) or "0")
        except (HyperVError, ValueError) as e:
            logger.debug(f"Hyper-V capability check failed: {e}")
            return False
        return count == len(REQUIRED_CMDLETS)

    def path_exists(self, path: str) -> bool:
        """Check if a file or directory exists on the host."""
        return self._run(f"Test-Path -LiteralPath {quote(path)}") == "True"

    def create_directory(self, path: str) -> None:
        """Create a directory (and parents) on the host."""
        self._run(f"New-Item -ItemType Directory -Path {quote(path)} -Force | Out-Null")

    # Switches

    def get_switch(self, name: str) -> Optional[Dict[str, Any]]:
        """Return switch details, or None if no switch has this name."""
        return self._find(
            f"Get-VMSwitch | Where-Object {{ $_.Name -eq {quote(name)} }} | "
            "Select-Object Name, @{n='SwitchType';e={$_.SwitchType.ToString()}} | "
            "ConvertTo-Json -Compress",
            name,
        )

    def create_switch(self, name: str, switch_type: str = "Internal") -> None:
        """Create a virtual switch."""
        self._run(f"New-VMSwitch -Name {quote(name)} -SwitchType {switch_type} | Out-Null")

    # Virtual machines

    def get_vm(self, name: str) -> Optional[Dict[str, Any]]:
        """Return VM details, or None if no VM has this name."""
        return self._find(
            f"Get-VM | Where-Object {{ $_.Name -eq {quote(name)} }} | "
            "Select-Object Name, Generation, ProcessorCount, MemoryStartup, "
            "@{n='State';e={$_.State.ToString()}} | "
            "ConvertTo-Json -Compress",
            name,
        )

    def get_vm_state(self, name: str) -> Optional[str]:
        """Return the power state (e.g. 'Off', 'Running'), or None if the VM is absent."""
        vm = self.get_vm(name)
        if vm is None:
            return None
        return vm.get("State")

    def create_disk(self, path: str, size_bytes: int) -> None:
        """Create a dynamically expanding virtual disk."""
        self._run(f"New-VHD -Path {quote(path)} -SizeBytes {int(size_bytes)} -Dynamic | Out-Null")

    def create_vm(
        self,
        name: str,
        memory_bytes: int,
        generation: int,
        disk_path: str,
        switch_name: str,
        vm_path: str,
    ) -> None:
        """Create a VM attached to an existing disk and switch."""
        self._run(
            f"New-VM -Name {quote(name)} -MemoryStartupBytes {int(memory_bytes)} "
            f"-Generation {int(generation)} -VHDPath {quote(disk_path)} "
            f"-SwitchName {quote(switch_name)} -Path {quote(vm_path)} | Out-Null"
        )

    def set_processor(self, name: str, count: int) -> None:
        self._run(f"Set-VMProcessor -VMName {quote(name)} -Count {int(count)}")

    def set_memory(self, name: str, startup_bytes: int, minimum_bytes: int, maximum_bytes: int) -> None:
        """Enable dynamic memory between minimum and maximum."""
        self._run(
            f"Set-VMMemory -VMName {quote(name)} -DynamicMemoryEnabled $true "
            f"-StartupBytes {int(startup_bytes)} -MinimumBytes {int(minimum_bytes)} "
            f"-MaximumBytes {int(maximum_bytes)}"
        )

    def set_secure_boot(self, name: str, template: str = "MicrosoftWindows") -> None:
        self._run(
            f"Set-VMFirmware -VMName {quote(name)} -EnableSecureBoot On "
            f"-SecureBootTemplate {quote(template)}"
        )

    def attach_dvd(self, name: str, iso_path: str) -> None:
        self._run(f"Add-VMDvdDrive -VMName {quote(name)} -Path {quote(iso_path)}")

    def set_first_boot_dvd(self, name: str) -> None:
        """Put the VM's DVD drive first in the firmware boot order."""
        self._run(
            f"Set-VMFirmware -VMName {quote(name)} "
            f"-FirstBootDevice (Get-VMDvdDrive -VMName {quote(name)} | Select-Object -First 1)"
        )

    def enable_integration_service(self, name: str, service: str) -> None:
        self._run(f"Enable-VMIntegrationService -VMName {quote(name)} -Name {quote(service)}")
