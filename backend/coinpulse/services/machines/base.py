"""Protocol for machine directories. All implementations return the same normalized shape."""
from typing import Protocol

from coinpulse.services.machines.types import ResolvedMachine


class MachineDirectory(Protocol):
    """Interface for the local machines table or a remote registry. Same contract; only lookup differs."""

    def resolve(
        self,
        machine_id: int | None = None,
        machine_code: str | None = None,
    ) -> ResolvedMachine | None:
        """
        Look a machine up by id (preferred) or code.
        Returns None when the machine does not exist. Raises MachineLookupError when the
        directory cannot answer in time.
        """
        ...
