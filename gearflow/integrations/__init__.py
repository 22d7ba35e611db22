"""Backend integrations."""

from gearflow.integrations.backend_client import BackendClient, build_filter_params

__all__ = [
    "BackendClient",
    "build_filter_params",
]
