from __future__ import annotations

from enum import Enum

from .definitions import ContainerDefinition
from .docker_ops import ObservedState


class Action(str, Enum):
    NOOP = "noop"
    CREATE = "create"  # create + start
    START = "start"
    REPLACE = "replace"  # stop (if running) + remove + create + start
    REMOVE = "remove"  # stop (if running) + remove, then stop supervising


def decide(observed: ObservedState | None, desired: ContainerDefinition | None) -> Action:
    """Pick the single action that moves ``observed`` toward ``desired``.

    ``None`` means absent on either side. Only the container's version label
    is compared against the definition; image or env drift under the same
    label is not detected.
    """
    if observed is None:
        return Action.CREATE if desired is not None else Action.NOOP
    if desired is None:
        return Action.REMOVE
    if observed.version == desired.version:
        return Action.NOOP if observed.running else Action.START
    return Action.REPLACE
