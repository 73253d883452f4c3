# backend/hunt_registry/__init__.py
"""Hunt Registry - versioned document storage for organizations and their scavenger hunts."""

__version__ = "1.2.0"
__title__ = "Hunt Registry API"
__description__ = "App and Org documents behind storage ports, with migrations and optimistic concurrency"
