"""Container states as reported by the engine."""

from __future__ import annotations

from enum import Enum


class ContainerState(Enum):
    """Lifecycle state of a container."""
    CONFIGURED = "configured"
    CREATED = "created"
    RUNNING = "running"
    EXITED = "exited"
    STOPPED = "stopped"
    UNKNOWN = "unknown"

    @classmethod
    def from_status(cls, status: str) -> "ContainerState":
        """Decode the engine's status text.

        Args:
            status: Raw output of ``inspect --format {{.State.Status}}``

        Returns:
            Matching state, or UNKNOWN for anything unrecognized
        """
        text = (status or "").strip().lower()
        for state in cls:
            if state is not cls.UNKNOWN and state.value == text:
                return state
        return cls.UNKNOWN

    @property
    def needs_start(self) -> bool:
        # podman reports "created" where older releases said "configured"
        return self in (
            ContainerState.CONFIGURED,
            ContainerState.CREATED,
            ContainerState.EXITED,
            ContainerState.STOPPED,
        )

    @property
    def is_running(self) -> bool:
        return self is ContainerState.RUNNING
