from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException


class DomainError(ValueError):
    """Validation failure that routers translate into a 400 response."""


class TipAmountError(DomainError):
    pass


class UnknownProductError(DomainError):
    pass


class ReferralCodeError(DomainError):
    pass


class NotFoundError(LookupError):
    pass


@contextmanager
def http_errors() -> Iterator[None]:
    """Map domain failures raised inside the block to HTTP responses."""
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(404, str(exc) or "Not found") from exc
    except DomainError as exc:
        raise HTTPException(400, str(exc)) from exc
