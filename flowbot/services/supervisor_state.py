from enum import Enum


class SupervisorPhase(str, Enum):
    STOPPED = "stopped"
    POLLING = "polling"
    DEGRADED = "degraded"
    RESTARTING = "restarting"


ACTIVE_PHASES = (SupervisorPhase.POLLING, SupervisorPhase.DEGRADED)

VALID_TRANSITIONS = {
    SupervisorPhase.STOPPED: [SupervisorPhase.POLLING],
    SupervisorPhase.POLLING: [SupervisorPhase.DEGRADED, SupervisorPhase.RESTARTING, SupervisorPhase.STOPPED],
    SupervisorPhase.DEGRADED: [
        SupervisorPhase.DEGRADED,
        SupervisorPhase.POLLING,
        SupervisorPhase.RESTARTING,
        SupervisorPhase.STOPPED,
    ],
    SupervisorPhase.RESTARTING: [SupervisorPhase.POLLING, SupervisorPhase.STOPPED],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_phase: SupervisorPhase, to_phase: SupervisorPhase):
        self.from_phase = from_phase
        self.to_phase = to_phase
        super().__init__(f"Invalid transition: {from_phase.value} -> {to_phase.value}")


def can_transition(from_phase: SupervisorPhase, to_phase: SupervisorPhase) -> bool:
    """Check if transition is valid."""
    return to_phase in VALID_TRANSITIONS.get(from_phase, [])


def transition(from_phase: SupervisorPhase, to_phase: SupervisorPhase) -> SupervisorPhase:
    """Perform phase transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_phase, to_phase):
        raise InvalidTransitionError(from_phase, to_phase)
    return to_phase


def after_fetch_failure(phase: SupervisorPhase, failures: int, threshold: int) -> SupervisorPhase:
    """Phase after a failed fetch; `failures` already includes this one."""
    if failures >= threshold:
        return transition(phase, SupervisorPhase.RESTARTING)
    return transition(phase, SupervisorPhase.DEGRADED)


def after_fetch_success(phase: SupervisorPhase) -> SupervisorPhase:
    """Phase after a successful fetch."""
    if phase == SupervisorPhase.DEGRADED:
        return transition(phase, SupervisorPhase.POLLING)
    return phase


def is_stalled(
    phase: SupervisorPhase,
    since_last_success: float,
    since_last_activity: float,
    interval: float,
) -> bool:
    """Whether the fetch timer looks wedged.

    Polling: no successful poll for more than two intervals.
    Degraded: no fetch attempt finished at all for more than two intervals.
    """
    limit = interval * 2
    if phase == SupervisorPhase.POLLING:
        return since_last_success > limit
    if phase == SupervisorPhase.DEGRADED:
        return since_last_activity > limit
    return False
