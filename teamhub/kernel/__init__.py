"""
Kernel: the event log, member identity and persisted view state.

Everything above the kernel (engines, API) reads the log through
kernel.events and never writes to the tables directly.
"""
