import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path, PureWindowsPath
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv

from hyperv_lab.models import ConfigurationError

logger = logging.getLogger(__name__)

GIB = 1024**3
DYNAMIC_MEMORY_FLOOR = 2 * GIB

DEFAULT_VM_NAMES = "LAB-DC01,LAB-SRV01,LAB-CLIENT01"


@dataclass(frozen=True)
class HostConfig:
    """Immutable provisioning parameters for one run."""

    switch_name: str
    vm_names: Tuple[str, ...]
    vm_path: str
    vhd_path: str
    iso_path: str
    memory_bytes: int
    processor_count: int
    disk_bytes: int
    generation: int = 2

    def __post_init__(self) -> None:
        # Accept any sequence from env/YAML but keep the stored value hashable
        object.__setattr__(self, "vm_names", tuple(self.vm_names))

        if not self.switch_name or not self.switch_name.strip():
            raise ConfigurationError("switch_name must not be empty")
        if not self.vm_names:
            raise ConfigurationError("at least one VM name is required")
        if any(not name.strip() for name in self.vm_names):
            raise ConfigurationError("VM names must not be blank")
        if len(set(self.vm_names)) != len(self.vm_names):
            raise ConfigurationError(f"duplicate VM names: {', '.join(self.vm_names)}")
        if self.processor_count < 1:
            raise ConfigurationError("processor_count must be at least 1")
        if self.disk_bytes <= 0:
            raise ConfigurationError("disk_bytes must be positive")
        if self.generation not in (1, 2):
            raise ConfigurationError(f"generation must be 1 or 2, got {self.generation}")
        if self.memory_bytes < DYNAMIC_MEMORY_FLOOR:
            raise ConfigurationError(
                f"memory_bytes ({self.memory_bytes}) is below the dynamic memory floor "
                f"({DYNAMIC_MEMORY_FLOOR})"
            )

    def disk_path_for(self, vm_name: str) -> str:
        """Return the VHDX path backing the given VM."""
        return str(PureWindowsPath(self.vhd_path) / f"{vm_name}.vhdx")


def _int_env(key: str, default: str) -> int:
    raw = os.getenv(key, default).strip()
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}")


class Config:
    """Loads and manages configuration from environment variables."""

    load_dotenv()

    # Unset means run PowerShell on this machine
    HYPERV_HOST = os.getenv("HYPERV_HOST") or None
    POWERSHELL_TIMEOUT = int(os.getenv("POWERSHELL_TIMEOUT", "300"))

    @staticmethod
    def get_vm_names() -> List[str]:
        """Reads HYPERV_VM_NAMES as a comma-separated list, preserving order."""
        raw = os.getenv("HYPERV_VM_NAMES", DEFAULT_VM_NAMES)
        return [name.strip() for name in raw.split(",") if name.strip()]

    @staticmethod
    def get_host_config() -> HostConfig:
        """Build the HostConfig from the environment, falling back to lab defaults."""
        return HostConfig(
            switch_name=os.getenv("HYPERV_SWITCH_NAME", "LabSwitch"),
            vm_names=tuple(Config.get_vm_names()),
            vm_path=os.getenv("HYPERV_VM_PATH", r"C:\Hyper-V\VMs"),
            vhd_path=os.getenv("HYPERV_VHD_PATH", r"C:\Hyper-V\VHDs"),
            iso_path=os.getenv("HYPERV_ISO_PATH", r"C:\ISO\WindowsServer2022.iso"),
            memory_bytes=_int_env("HYPERV_MEMORY_GB", "4") * GIB,
            processor_count=_int_env("HYPERV_PROCESSOR_COUNT", "2"),
            disk_bytes=_int_env("HYPERV_DISK_GB", "60") * GIB,
            generation=_int_env("HYPERV_GENERATION", "2"),
        )


def _overrides_from_yaml(data: Dict[str, Any]) -> Dict[str, Any]:
    """Translate YAML keys into HostConfig field overrides."""
    fields = {f.name for f in dataclasses.fields(HostConfig)}
    overrides: Dict[str, Any] = {}

    for key, value in data.items():
        if key in ("memory_gb", "disk_gb"):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"{key} must be a number, got {value!r}")
            overrides[key.replace("_gb", "_bytes")] = int(value * GIB)
        elif key == "vm_names" and isinstance(value, str):
            overrides[key] = [name.strip() for name in value.split(",") if name.strip()]
        elif key in fields:
            overrides[key] = value
        else:
            raise ConfigurationError(f"Unknown configuration key: {key}")

    return overrides


def load_host_config(config_file: Optional[Union[str, Path]] = None) -> HostConfig:
    """
    Load the HostConfig from the environment, optionally overlaid with a YAML file.

    Args:
        config_file: Optional YAML file whose keys mirror HostConfig fields
                     (memory_gb/disk_gb are accepted as shorthands)

    Returns:
        HostConfig ready to pass to the provisioner

    Raises:
        ConfigurationError: If the file is missing, malformed or has invalid values
    """
    if config_file is None:
        return Config.get_host_config()

    path = Path(config_file)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    logger.info(f"📖 Loading host config from: {path}")

    with open(path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    overrides = _overrides_from_yaml(data)

    try:
        return dataclasses.replace(Config.get_host_config(), **overrides)
    except (TypeError, AttributeError) as e:
        raise ConfigurationError(f"Invalid value in {path}: {e}") from e
