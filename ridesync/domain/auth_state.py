"""State machine for the device-code login flow.

Each state is an immutable value tagged with an AuthStage; `transition` is
the only sanctioned way to move from one state to the next.
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional


class AuthStage(str, Enum):
    IDLE = 'idle'
    REQUESTING_CODE = 'requesting_code'
    WAITING_FOR_USER = 'waiting_for_user'
    POLLING = 'polling'
    SUCCESS = 'success'
    ERROR = 'error'
    EXPIRED = 'expired'
    ACCESS_DENIED = 'access_denied'


class AuthEvent(str, Enum):
    START = 'start'
    CODE_RECEIVED = 'code_received'
    POLL_ATTEMPT = 'poll_attempt'
    AUTHORIZED = 'authorized'
    EXPIRED = 'expired'
    DENIED = 'denied'
    FAILED = 'failed'
    CANCEL = 'cancel'


class InvalidAuthTransition(Exception):
    """Raised when an event is not valid in the current state."""

    def __init__(self, stage, event):
        self.stage = stage
        self.event = event
        super().__init__(f"Cannot apply {event.value} in state {stage.value}")


@dataclass(frozen=True)
class DeviceAuthState:
    stage: ClassVar[AuthStage]

    @property
    def is_terminal(self):
        return self.stage in TERMINAL_STAGES

    @property
    def is_active(self):
        return self.stage in ACTIVE_STAGES

    def to_dict(self):
        data = {'stage': self.stage.value}
        data.update(vars(self))
        return data


@dataclass(frozen=True)
class Idle(DeviceAuthState):
    stage: ClassVar[AuthStage] = AuthStage.IDLE


@dataclass(frozen=True)
class RequestingCode(DeviceAuthState):
    stage: ClassVar[AuthStage] = AuthStage.REQUESTING_CODE


@dataclass(frozen=True)
class WaitingForUser(DeviceAuthState):
    stage: ClassVar[AuthStage] = AuthStage.WAITING_FOR_USER
    user_code: str
    verification_uri: str
    expires_in: int


@dataclass(frozen=True)
class Polling(DeviceAuthState):
    stage: ClassVar[AuthStage] = AuthStage.POLLING
    user_code: str
    verification_uri: str
    attempts_remaining: int


@dataclass(frozen=True)
class Success(DeviceAuthState):
    stage: ClassVar[AuthStage] = AuthStage.SUCCESS
    email: Optional[str]
    name: Optional[str]


@dataclass(frozen=True)
class Error(DeviceAuthState):
    stage: ClassVar[AuthStage] = AuthStage.ERROR
    message: str


@dataclass(frozen=True)
class Expired(DeviceAuthState):
    stage: ClassVar[AuthStage] = AuthStage.EXPIRED


@dataclass(frozen=True)
class AccessDenied(DeviceAuthState):
    stage: ClassVar[AuthStage] = AuthStage.ACCESS_DENIED


TERMINAL_STAGES = frozenset({AuthStage.SUCCESS, AuthStage.ERROR, AuthStage.EXPIRED, AuthStage.ACCESS_DENIED})
ACTIVE_STAGES = frozenset({AuthStage.REQUESTING_CODE, AuthStage.WAITING_FOR_USER, AuthStage.POLLING})

_AWAITING = {
    AuthEvent.POLL_ATTEMPT: Polling,
    AuthEvent.AUTHORIZED: Success,
    AuthEvent.EXPIRED: Expired,
    AuthEvent.DENIED: AccessDenied,
    AuthEvent.FAILED: Error,
    AuthEvent.CANCEL: Idle,
}

_RESTARTABLE = {
    AuthEvent.START: RequestingCode,
    AuthEvent.FAILED: Error,
    AuthEvent.CANCEL: Idle,
}

TRANSITIONS = {
    AuthStage.IDLE: _RESTARTABLE,
    AuthStage.REQUESTING_CODE: {
        AuthEvent.CODE_RECEIVED: WaitingForUser,
        AuthEvent.FAILED: Error,
        AuthEvent.CANCEL: Idle,
    },
    AuthStage.WAITING_FOR_USER: _AWAITING,
    AuthStage.POLLING: _AWAITING,
    AuthStage.SUCCESS: _RESTARTABLE,
    AuthStage.ERROR: _RESTARTABLE,
    AuthStage.EXPIRED: _RESTARTABLE,
    AuthStage.ACCESS_DENIED: _RESTARTABLE,
}


def transition(state, event, **payload):
    """Apply an event to a state and return the next state.

    Args:
        state: Current DeviceAuthState
        event: AuthEvent to apply
        **payload: Fields of the target state (user_code, message, ...)

    Raises:
        InvalidAuthTransition: If the event is not allowed in the current stage
    """
    target = TRANSITIONS[state.stage].get(AuthEvent(event))
    if target is None:
        raise InvalidAuthTransition(state.stage, AuthEvent(event))
    return target(**payload)
