"""Shared route dependencies."""

from fastapi import Request

from sync_engine.service import IntegrationService


def get_engine(request: Request) -> IntegrationService:
    """The engine started by the app lifespan."""
    return request.app.state.engine
