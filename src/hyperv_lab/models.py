"""Data models and exceptions for Hyper-V lab provisioning."""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from hyperv_lab.config import HostConfig


class VMOutcome(Enum):
    """What happened to a VM during a provisioning pass."""

    CREATED = "created"
    SKIPPED = "skipped"  # Already existed, left untouched
    FAILED = "failed"
    PLANNED = "planned"  # Dry run only


@dataclass
class VMResult:
    """Result of provisioning a single VM."""

    name: str
    outcome: VMOutcome
    error: Optional[str] = None
    state: Optional[str] = None

    @property
    def exists(self) -> bool:
        """Check if the host reported the VM during the summary step."""
        return self.state is not None


@dataclass(frozen=True)
class SwitchResult:
    """Result of the switch ensure step."""

    name: str
    created: bool


@dataclass
class ProvisionReport:
    """Aggregate outcome of a provisioning run."""

    config: "HostConfig"
    switch: SwitchResult
    vms: List[VMResult] = field(default_factory=list)
    dry_run: bool = False

    def _with(self, outcome: VMOutcome) -> List[VMResult]:
        return [vm for vm in self.vms if vm.outcome == outcome]

    @property
    def created(self) -> List[VMResult]:
        return self._with(VMOutcome.CREATED)

    @property
    def skipped(self) -> List[VMResult]:
        return self._with(VMOutcome.SKIPPED)

    @property
    def failed(self) -> List[VMResult]:
        return self._with(VMOutcome.FAILED)

    @property
    def success(self) -> bool:
        """True when no VM failed."""
        return not self.failed


class HyperVLabError(Exception):
    """Base exception for Hyper-V lab errors."""

    pass


class ConfigurationError(HyperVLabError):
    """Raised when the host configuration is invalid."""

    pass


class HyperVError(HyperVLabError):
    """Raised when a host management call fails."""

    pass


class PowerShellError(HyperVError):
    """Raised when a PowerShell command exits non-zero or times out."""

    def __init__(self, message: str, stderr: str = "", exit_status: Optional[int] = None):
        super().__init__(message)
        self.stderr = stderr
        self.exit_status = exit_status


class CapabilityMissingError(HyperVLabError):
    """Raised when the host has no Hyper-V management capability."""

    pass


class SwitchProvisioningError(HyperVLabError):
    """Raised when the virtual switch cannot be looked up or created."""

    pass
