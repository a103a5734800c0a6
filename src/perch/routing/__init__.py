"""Routing — path normalization and the mutable route table.

Routes are registered and removed at any time; lookups hand out a fresh
``RouteStream`` per call.
"""
