from coinpulse.models.daily_rollup import DailyRollup
from coinpulse.models.hourly_rollup import HourlyRollup
from coinpulse.models.machine import Machine
from coinpulse.models.machine_counters import MachineCounters
from coinpulse.models.pulse_event import PulseEvent

__all__ = [
    "DailyRollup",
    "HourlyRollup",
    "Machine",
    "MachineCounters",
    "PulseEvent",
]
