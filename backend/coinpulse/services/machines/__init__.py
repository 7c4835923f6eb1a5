"""
Machine directories: local machines table or a remote registry.
Each returns the same ResolvedMachine so ingestion stays lookup-agnostic.
"""
from sqlalchemy.orm import Session

from coinpulse.config import settings
from coinpulse.services.machines.base import MachineDirectory
from coinpulse.services.machines.database_directory import DatabaseMachineDirectory, machine_to_resolved
from coinpulse.services.machines.http_directory import HttpMachineDirectory
from coinpulse.services.machines.types import MachineLocation, ResolvedMachine, normalize_code


def get_machine_directory(db: Session) -> MachineDirectory:
    """Remote registry when MACHINE_DIRECTORY_URL is set, else the local machines table."""
    if settings.machine_directory_url:
        return HttpMachineDirectory(
            settings.machine_directory_url,
            timeout=settings.machine_lookup_timeout_seconds,
        )
    return DatabaseMachineDirectory(db)


__all__ = [
    "DatabaseMachineDirectory",
    "HttpMachineDirectory",
    "MachineDirectory",
    "MachineLocation",
    "ResolvedMachine",
    "get_machine_directory",
    "machine_to_resolved",
    "normalize_code",
]
