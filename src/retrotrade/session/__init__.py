"""Simulation session: feed, clock, ledger and viewport behind one command surface."""

from .orchestrator import SessionSnapshot, SimulationConfig, SimulationSession, load_and_start
from .orders import ScriptedOrder, load_orders, parse_orders, schedule_orders

__all__ = [
    "ScriptedOrder",
    "SessionSnapshot",
    "SimulationConfig",
    "SimulationSession",
    "load_and_start",
    "load_orders",
    "parse_orders",
    "schedule_orders",
]
