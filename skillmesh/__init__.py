"""skillmesh: manage a central repository of AI coding-tool skills."""

__version__ = "0.3.0"
