"""Agregación de telemetría.

Estructura modular:
- interpreters.py: Un intérprete por tipo de mensaje
- aggregator.py: Estado agregado por sistema, gasto cardíaco, disponibilidad
- ordering_buffer.py: Buffer acotado que aplica frames en orden de timestamp
"""

from .aggregator import PUMP_CROSS_SECTION_AREA, StateAggregator, calculate_cardiac_output
from .interpreters import INTERPRETERS, get_interpreter
from .ordering_buffer import BufferedFrame, BufferStats, OrderingBuffer

__all__ = [
    "PUMP_CROSS_SECTION_AREA",
    "StateAggregator",
    "calculate_cardiac_output",
    "INTERPRETERS",
    "get_interpreter",
    "BufferedFrame",
    "BufferStats",
    "OrderingBuffer",
]
