"""
Printing subsystem for the print agent.

This package groups the print pipeline:

- models: request-scoped value types (requests, descriptors, medium profiles, outcomes)
- drivers: OS printer enumeration and file submission (CUPS `lp`, Windows spooler)
- directory: printer enumeration and configured-name resolution with default fallback
- session: isolated headless-browser render sessions with resource stabilization
- dispatcher: job submission and completion mapping
- engine: the background asyncio loop hosting the shared browser
- orchestrator: per-request coordination, timeouts, and cleanup

Only the value types are re-exported here; import the other modules directly.
"""

from .models import *
