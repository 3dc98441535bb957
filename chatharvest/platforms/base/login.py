"""Login state machine shared by all platform adapters.

The authentication flow of every site follows the same graph:

    UNKNOWN -> CHECKING_UI -> LOGGED_IN
                           -> INJECTING_CREDENTIALS -> LOGGED_IN
                                                    -> AWAITING_MANUAL_LOGIN
                                                    -> LOGIN_FAILED
                           -> AWAITING_MANUAL_LOGIN -> LOGGED_IN
                                                    -> LOGIN_FAILED

The machine only tracks state; the adapter performs the probes and the
credential injection and reports each outcome through ``transition``.
"""

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class LoginState(Enum):
    UNKNOWN = "unknown"
    CHECKING_UI = "checking_ui"
    INJECTING_CREDENTIALS = "injecting_credentials"
    AWAITING_MANUAL_LOGIN = "awaiting_manual_login"
    LOGGED_IN = "logged_in"
    LOGIN_FAILED = "login_failed"


ALLOWED_TRANSITIONS: dict[LoginState, frozenset[LoginState]] = {
    LoginState.UNKNOWN: frozenset({LoginState.CHECKING_UI}),
    LoginState.CHECKING_UI: frozenset(
        {
            LoginState.LOGGED_IN,
            LoginState.INJECTING_CREDENTIALS,
            LoginState.AWAITING_MANUAL_LOGIN,
        }
    ),
    LoginState.INJECTING_CREDENTIALS: frozenset(
        {
            LoginState.LOGGED_IN,
            LoginState.AWAITING_MANUAL_LOGIN,
            LoginState.LOGIN_FAILED,
        }
    ),
    LoginState.AWAITING_MANUAL_LOGIN: frozenset(
        {LoginState.LOGGED_IN, LoginState.LOGIN_FAILED}
    ),
    LoginState.LOGGED_IN: frozenset(),
    LoginState.LOGIN_FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({LoginState.LOGGED_IN, LoginState.LOGIN_FAILED})


class LoginStateMachine:
    """Validated login state with a transition history."""

    def __init__(self, platform_id: str = ""):
        self.platform_id = platform_id
        self.state = LoginState.UNKNOWN
        self.history: list[LoginState] = [LoginState.UNKNOWN]

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def logged_in(self) -> bool:
        return self.state is LoginState.LOGGED_IN

    def can_transition(self, target: LoginState) -> bool:
        return target in ALLOWED_TRANSITIONS[self.state]

    def transition(self, target: LoginState) -> LoginState:
        """Move to ``target``.

        Raises
        ------
            ValueError: If the transition is not part of the login graph

        """
        if not self.can_transition(target):
            raise ValueError(
                f"Illegal login transition for {self.platform_id or 'platform'}: "
                f"{self.state.value} -> {target.value}"
            )
        logger.debug(
            f"[{self.platform_id}] login state {self.state.value} -> {target.value}"
        )
        self.state = target
        self.history.append(target)
        return target
