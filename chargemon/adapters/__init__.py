"""Adapter package for external I/O implementations.

Purpose:
    Collect concrete implementations for domain ports: the TCP device probe,
    the HTTP metrics session and the durable address book.

Dependencies:
    Individual submodules depend on ``requests``, ``socket``, filesystem APIs,
    and domain protocol definitions.

Call context:
    Imported by app composition modules (for runtime wiring) and by tests (for
    transport-level behavior verification).
"""
