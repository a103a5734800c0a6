"""ASGI serving for a RouteTable."""

from perch.server.app import RouteApp

__all__ = ["RouteApp"]
