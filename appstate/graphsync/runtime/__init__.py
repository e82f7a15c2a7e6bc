"""
Runtime collaborators for GraphSync.

This module provides the protocols the reconciler consumes and reference
implementations of them:
- HostRuntime, Scheduler, Transport: collaborator protocols
- RenderContext: values threaded through a render pass
- InMemoryHost: headless component host
- ManualScheduler, AsyncioScheduler: deferred flush runners
"""

from .base import HostRuntime, RenderContext, Scheduler, Sends, Transport
from .memory import InMemoryHost, MountedComponent
from .scheduler import AsyncioScheduler, ManualScheduler

__all__ = [
    "HostRuntime",
    "RenderContext",
    "Scheduler",
    "Sends",
    "Transport",
    "InMemoryHost",
    "MountedComponent",
    "AsyncioScheduler",
    "ManualScheduler",
]
