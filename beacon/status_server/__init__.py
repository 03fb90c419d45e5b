"""HTTP listeners: data-plane API app and control-plane orchestrator app."""

from beacon.status_server.app import create_api_app, create_orchestrator_app

__all__ = ["create_api_app", "create_orchestrator_app"]
