from .request_id import RequestIDMiddleware
from .security import ExceptionGuardMiddleware, SecurityMiddleware

__all__ = [
    "RequestIDMiddleware",
    "SecurityMiddleware",
    "ExceptionGuardMiddleware",
]
