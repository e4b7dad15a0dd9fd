from enum import Enum


class ConversationPhase(str, Enum):
    IDLE = "idle"
    AWAITING_INPUT = "awaiting_input"


# AWAITING_INPUT -> AWAITING_INPUT: a new prompt silently replaces the old one
VALID_TRANSITIONS = {
    ConversationPhase.IDLE: [ConversationPhase.AWAITING_INPUT],
    ConversationPhase.AWAITING_INPUT: [ConversationPhase.IDLE, ConversationPhase.AWAITING_INPUT],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_phase: ConversationPhase, to_phase: ConversationPhase):
        self.from_phase = from_phase
        self.to_phase = to_phase
        super().__init__(f"Invalid transition: {from_phase.value} -> {to_phase.value}")


def can_transition(from_phase: ConversationPhase, to_phase: ConversationPhase) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_phase, [])
    return to_phase in allowed


def transition(from_phase: ConversationPhase, to_phase: ConversationPhase) -> ConversationPhase:
    """Perform phase transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_phase, to_phase):
        raise InvalidTransitionError(from_phase, to_phase)
    return to_phase


def await_input(current: ConversationPhase) -> ConversationPhase:
    """A handler asked the user for follow-up text."""
    return transition(current, ConversationPhase.AWAITING_INPUT)


def complete(current: ConversationPhase) -> ConversationPhase:
    """Pending action consumed: finished, cancelled or failed."""
    return transition(current, ConversationPhase.IDLE)
