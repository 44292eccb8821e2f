"""HTTP front: endpoint table, request parsing, CORS and the task bouncer."""

from .app import create_bouncer_app
from .endpoints import Address, Endpoint, Task, path_endpoint, static_file_endpoint
from .runner import BouncerServer, serve, start_server

__all__ = [
    "Address",
    "BouncerServer",
    "Endpoint",
    "Task",
    "create_bouncer_app",
    "path_endpoint",
    "serve",
    "start_server",
    "static_file_endpoint",
]
