from __future__ import annotations


class TaskflowError(Exception):
    """Base class for errors raised by the task backend."""


# PUBLIC_INTERFACE
class StoreError(TaskflowError):
    """
    Raised when the task store cannot serve a request (I/O failure, corrupt
    rows, unreachable backend).

    Callers must surface this as a failure; it is never translated into an
    empty task list.
    """
