"""Dependency injection for API routes."""

from typing import Annotated

from fastapi import Depends, Request

from skillloop.services.generation import GenerationOrchestrator
from skillloop.services.provisioning import KeyProvisioner


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    """Return the process-wide orchestrator built at startup."""
    return request.app.state.orchestrator


def get_provisioner(request: Request) -> KeyProvisioner:
    """Return the key provisioner sharing the orchestrator's account store."""
    return request.app.state.provisioner


# Type aliases for dependency injection
Orchestrator = Annotated[GenerationOrchestrator, Depends(get_orchestrator)]
Provisioner = Annotated[KeyProvisioner, Depends(get_provisioner)]
