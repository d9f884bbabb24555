"""Use-case layer for discovery and telemetry workflows.

Each module coordinates domain objects and ports without performing transport
I/O directly; sockets and HTTP live behind the adapters.
"""
