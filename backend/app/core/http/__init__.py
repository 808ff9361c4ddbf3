from .errors import STATUS_BY_ERROR, register_exception_handlers

__all__ = [
    "STATUS_BY_ERROR",
    "register_exception_handlers",
]
