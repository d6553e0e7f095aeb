from __future__ import annotations

from db.models import StatementStatus


class InvalidStatusTransition(Exception):
    def __init__(self, current: StatementStatus, target: StatementStatus):
        super().__init__(f"Cannot move statement from {current.value} to {target.value}")
        self.current = current
        self.target = target


TERMINAL_STATUSES = frozenset({StatementStatus.COMPLETED, StatementStatus.FAILED})


def transition(current: StatementStatus, target: StatementStatus, reprocess: bool = False) -> StatementStatus:
    """
    Validate one step of UPLOADED -> PROCESSING -> {COMPLETED | FAILED}.

    `reprocess` starts a new attempt: PROCESSING may then be entered again
    from UPLOADED or a terminal state. REVIEW_NEEDED is never entered.
    """
    if target is StatementStatus.REVIEW_NEEDED:
        raise NotImplementedError("REVIEW_NEEDED is declared but not entered by the pipeline")

    if target is StatementStatus.PROCESSING:
        if current is StatementStatus.UPLOADED:
            return target
        if reprocess and current in TERMINAL_STATUSES:
            return target
        raise InvalidStatusTransition(current, target)

    if target in TERMINAL_STATUSES:
        if current is StatementStatus.PROCESSING:
            return target
        raise InvalidStatusTransition(current, target)

    if target is StatementStatus.UPLOADED:
        raise InvalidStatusTransition(current, target)

    raise AssertionError(f"Unhandled statement status: {target!r}")
