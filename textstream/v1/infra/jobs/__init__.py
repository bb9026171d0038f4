"""
In-memory background text processing.

This package provides:
- A thread-safe job store with a forward-only status lifecycle
- Per-job cooperative cancellation tokens
- A bounded, FIFO in-process worker with graceful drain
- Best-effort progress and outcome notifications
"""
