class AssignmentError(Exception):
    """Base class for assignment failures surfaced to the caller."""

    status_code = 400


class AssignmentNotFound(AssignmentError):
    status_code = 404

    def __init__(self, message="Assignment expired or not found"):
        super().__init__(message)


class AssignmentForbidden(AssignmentError):
    status_code = 403

    def __init__(self, message="This assignment is not for you"):
        super().__init__(message)


class OrderAlreadyAssigned(AssignmentError):
    status_code = 400

    def __init__(self, message="Order already assigned to a waiter"):
        super().__init__(message)


class NoWaitersAvailable(AssignmentError):
    status_code = 404

    def __init__(self, message="No active waiters available"):
        super().__init__(message)
