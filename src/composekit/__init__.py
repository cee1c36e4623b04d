"""Composekit - Docker Compose tasks and status-polling trigger.

This package provides runnable tasks that drive the ``docker-compose`` CLI
(up, down, start, stop, ps) on behalf of a workflow engine, and a polling
trigger that watches container status and conditionally launches a workflow
execution.
"""

__version__ = "0.1.0"
