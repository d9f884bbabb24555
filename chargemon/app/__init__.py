"""Application composition layer for the console monitor.

Modules in this package load settings, wire adapters into use cases and drive
the monitor loop without placing discovery or polling logic in the CLI.
"""
