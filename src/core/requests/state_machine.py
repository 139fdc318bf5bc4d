# src/core/requests/state_machine.py
"""
Допустимые переходы статусов заявки.
"""

from src.common.constants import RequestStatus


class RequestStateMachine:
    ALLOWED_TRANSITIONS = {
        RequestStatus.OPEN: [RequestStatus.PENDING, RequestStatus.CANCELLED],
        RequestStatus.PENDING: [RequestStatus.ACCEPTED, RequestStatus.CANCELLED],
        RequestStatus.ACCEPTED: [RequestStatus.IN_PROGRESS, RequestStatus.CANCELLED],
        RequestStatus.IN_PROGRESS: [RequestStatus.COMPLETED, RequestStatus.CANCELLED],
        RequestStatus.COMPLETED: [RequestStatus.CONFIRMED, RequestStatus.CANCELLED],
        RequestStatus.CONFIRMED: [],
        RequestStatus.CANCELLED: [],
    }

    @staticmethod
    def can_transition(current_status: str, new_status: str) -> bool:
        try:
            curr = RequestStatus(current_status)
            new = RequestStatus(new_status)
            return new in RequestStateMachine.ALLOWED_TRANSITIONS.get(curr, [])
        except ValueError:
            return False

    @staticmethod
    def is_terminal(status: str) -> bool:
        return not RequestStateMachine.ALLOWED_TRANSITIONS.get(RequestStatus(status))
