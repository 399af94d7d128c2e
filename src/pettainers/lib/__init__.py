"""pettainers library modules.

Configuration, engine access, provisioning and lifecycle orchestration.
"""

__all__ = [
    "config_parser",
    "engine",
    "orchestrator",
    "provisioning",
    "state",
]
