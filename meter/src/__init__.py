"""
Modbus electricity meter package.

Polls an electricity meter over a persistent Modbus TCP connection, decodes
the configured power and energy registers, and derives min/avg/max power per
measurement window together with a cumulative energy counter.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-101)

TODO:
- None
"""
