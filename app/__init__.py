"""Secret Santa backend.

FastAPI service for gift-exchange groups: passwordless sign in, request
governance (CSRF + rate limiting) and the assignment lottery.
"""

__all__: list[str] = []
