#!/usr/bin/env python3
"""
src/hyperv_lab/provisioner.py

Idempotently provision an internal switch and a set of VMs on a Hyper-V host.
Anything that already exists is left untouched.
"""

import logging
from typing import Any, List

from hyperv_lab.config import DYNAMIC_MEMORY_FLOOR, HostConfig
from hyperv_lab.models import (
    CapabilityMissingError,
    ProvisionReport,
    SwitchProvisioningError,
    SwitchResult,
    VMOutcome,
    VMResult,
)

logger = logging.getLogger(__name__)

SWITCH_TYPE = "Internal"
SECURE_BOOT_TEMPLATE = "MicrosoftWindows"

INTEGRATION_SERVICES = (
    "Guest Service Interface",
    "Heartbeat",
    "Key-Value Pair Exchange",
    "Shutdown",
    "Time Synchronization",
    "VSS",
)


class Provisioner:
    """Turns a HostConfig into host-side objects that do not exist yet."""

    def __init__(self, host: Any, config: HostConfig, dry_run: bool = False) -> None:
        """
        Initialize the provisioner.

        Args:
            host: Hyper-V capability object (HyperVClient or a test double)
            config: Parameters for this run
            dry_run: Perform lookups only and report what would be created
        """
        self.host = host
        self.config = config
        self.dry_run = dry_run

    def check_capability(self) -> None:
        """Stop the run if the host cannot manage Hyper-V."""
        if not self.host.is_available():
            raise CapabilityMissingError(
                "Hyper-V management cmdlets are not available on this host. "
                "Enable the Hyper-V role and its PowerShell module."
            )
        logger.info("✅ Hyper-V management capability available")

    def ensure_directories(self) -> None:
        """Create the VM and disk directories if missing; errors propagate."""
        for path in (self.config.vm_path, self.config.vhd_path):
            if self.host.path_exists(path):
                logger.info(f"✅ Directory {path} already exists")
                continue
            if self.dry_run:
                logger.info(f"🔍 Would create directory {path}")
                continue
            self.host.create_directory(path)
            logger.info(f"🆕 Created directory {path}")

    def check_image(self) -> bool:
        """Warn when the installer image is missing. Returns whether it exists."""
        if self.host.path_exists(self.config.iso_path):
            logger.info(f"✅ Installer image found at {self.config.iso_path}")
            return True
        logger.warning(
            f"⚠️  Installer image not found at {self.config.iso_path}; "
            "VMs will be created without a DVD drive"
        )
        return False

    def ensure_switch(self) -> SwitchResult:
        """Create the internal switch if absent. Any failure is fatal."""
        name = self.config.switch_name
        try:
            if self.host.get_switch(name) is not None:
                logger.info(f"✅ Virtual switch {name!r} already exists")
                return SwitchResult(name=name, created=False)

            if self.dry_run:
                logger.info(f"🔍 Would create {SWITCH_TYPE.lower()} switch {name!r}")
                return SwitchResult(name=name, created=False)

            self.host.create_switch(name, SWITCH_TYPE)
        except Exception as e:
            raise SwitchProvisioningError(f"Failed to ensure virtual switch {name!r}: {e}") from e

        logger.info(f"🆕 Created {SWITCH_TYPE.lower()} switch {name!r}")
        return SwitchResult(name=name, created=True)

    def _create_vm(self, name: str, image_available: bool) -> None:
        cfg = self.config
        disk_path = cfg.disk_path_for(name)

        logger.info(f"💾 Creating {cfg.disk_bytes // (1024**3)}GB dynamic disk {disk_path}")
        self.host.create_disk(disk_path, cfg.disk_bytes)

        logger.info(
            f"🆕 Creating VM {name!r}: {cfg.processor_count} CPUs, "
            f"{cfg.memory_bytes // (1024**2)}MB RAM, generation {cfg.generation}"
        )
        self.host.create_vm(
            name,
            memory_bytes=cfg.memory_bytes,
            generation=cfg.generation,
            disk_path=disk_path,
            switch_name=cfg.switch_name,
            vm_path=cfg.vm_path,
        )

        self.host.set_processor(name, cfg.processor_count)
        self.host.set_memory(
            name,
            startup_bytes=cfg.memory_bytes,
            minimum_bytes=DYNAMIC_MEMORY_FLOOR,
            maximum_bytes=cfg.memory_bytes,
        )

        if cfg.generation == 2:
            self.host.set_secure_boot(name, SECURE_BOOT_TEMPLATE)
            if image_available:
                self.host.attach_dvd(name, cfg.iso_path)
                self.host.set_first_boot_dvd(name)
                logger.info(f"📀 Attached {cfg.iso_path} to {name!r} as first boot device")

        for service in INTEGRATION_SERVICES:
            self.host.enable_integration_service(name, service)

    def provision_vm(self, name: str, image_available: bool) -> VMResult:
        """Create one VM and its disk unless a VM with this name exists.

        Errors are caught and reported on the result so other VMs still run.
        """
        try:
            if self.host.get_vm(name) is not None:
                logger.info(f"✅ VM {name!r} already exists, skipped")
                return VMResult(name=name, outcome=VMOutcome.SKIPPED)

            if self.dry_run:
                logger.info(f"🔍 Would create VM {name!r} with disk {self.config.disk_path_for(name)}")
                return VMResult(name=name, outcome=VMOutcome.PLANNED)

            self._create_vm(name, image_available)
        except Exception as e:
            logger.error(f"❌ Failed to provision VM {name!r}: {e}")
            return VMResult(name=name, outcome=VMOutcome.FAILED, error=str(e))

        logger.info(f"✅ VM {name!r} created")
        return VMResult(name=name, outcome=VMOutcome.CREATED)

    def collect_states(self, results: List[VMResult]) -> None:
        """Fill in each result's power state as reported by the host."""
        for result in results:
            try:
                result.state = self.host.get_vm_state(result.name)
            except Exception as e:
                logger.warning(f"⚠️  Could not query state of {result.name!r}: {e}")
                result.state = None

    def run(self) -> ProvisionReport:
        """
        Run the full provisioning sequence.

        Returns:
            ProvisionReport with one VMResult per configured name, in order

        Raises:
            CapabilityMissingError: If Hyper-V is not available
            HyperVError: If a directory cannot be checked or created
            SwitchProvisioningError: If the switch cannot be looked up or created
        """
        self.check_capability()
        self.ensure_directories()
        image_available = self.check_image()
        switch = self.ensure_switch()

        results = [self.provision_vm(name, image_available) for name in self.config.vm_names]
        self.collect_states(results)

        report = ProvisionReport(config=self.config, switch=switch, vms=results, dry_run=self.dry_run)
        logger.info(
            f"Provisioning finished: {len(report.created)} created, "
            f"{len(report.skipped)} skipped, {len(report.failed)} failed"
        )
        return report
