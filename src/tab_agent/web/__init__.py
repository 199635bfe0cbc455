"""Websocket/REST server and the broadcast hub."""

from .broadcast import BroadcastHub, Connection
from .server import create_app, run_server

__all__ = ["BroadcastHub", "Connection", "create_app", "run_server"]
