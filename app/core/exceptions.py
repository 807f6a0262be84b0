"""
Core invariant exceptions.

Used to distinguish programming-invariant failures from rejected requests.
"""


class ArithmeticInvariantError(Exception):
    """Raised when checked arithmetic would overflow, underflow or divide by zero.

    Never a user error. The operation is aborted and no state is written.
    """
    pass
