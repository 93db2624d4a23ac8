from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Annotated, NoReturn

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.core.logging import user_id_var
from app.db import engine as db_engine
from app.models.principal import Principal
from app.repos.catalog_repo import InMemoryCatalogRepo
from app.repos.enrollment_repo import InMemoryEnrollmentRepo
from app.repos.pg_catalog_repo import PgCatalogRepo
from app.repos.pg_enrollment_repo import PgEnrollmentRepo
from app.repos.pg_progress_repo import PgProgressRepo
from app.repos.progress_repo import InMemoryProgressRepo
from app.services import token_service
from app.services.catalog_authoring import CatalogAuthoring
from app.services.errors import (
    AlreadyEnrolled,
    ConsistencyViolation,
    CourseInUse,
    InvalidInput,
    LedgerError,
    LessonInUse,
    NotEnrolled,
    NotFound,
    SlugTaken,
    UnknownLesson,
)
from app.services.progress_ledger import ProgressLedger
from app.services.progress_reports import ProgressReports

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")


async def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal.

    Used as a FastAPI dependency on any protected endpoint.
    """
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    principal = Principal(
        user_id=claims["sub"],
        roles=frozenset(claims.get("roles", [])),
    )
    user_id_var.set(principal.user_id)
    logger.debug(
        "Token validated for user=%s roles=%s",
        principal.user_id,
        principal.roles,
    )
    return principal


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
    Returns the Principal if the role is present, else 403.
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_role(role):
            logger.warning(
                "Access denied: user=%s missing role=%s",
                principal.user_id,
                role,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------
# Without DATABASE_URL every request shares these in-memory repos (reset
# by the autouse fixture in tests/conftest.py).  With a database each
# request gets its own session, and the services commit it themselves
# after each write, before the endpoint answers.  session_scope() only
# rolls back what an error left uncommitted.

catalog_repo = InMemoryCatalogRepo()
progress_repo = InMemoryProgressRepo()
enrollment_repo = InMemoryEnrollmentRepo()


async def get_ledger() -> AsyncIterator[ProgressLedger]:
    if db_engine.async_session_factory is None:
        yield ProgressLedger(catalog_repo, progress_repo, enrollment_repo)
        return
    async with db_engine.session_scope() as session:
        yield ProgressLedger(
            PgCatalogRepo(session),
            PgProgressRepo(session),
            PgEnrollmentRepo(session),
            commit=session.commit,
        )


async def get_authoring() -> AsyncIterator[CatalogAuthoring]:
    if db_engine.async_session_factory is None:
        yield CatalogAuthoring(catalog_repo, progress_repo, enrollment_repo)
        return
    async with db_engine.session_scope() as session:
        yield CatalogAuthoring(
            PgCatalogRepo(session),
            PgProgressRepo(session),
            PgEnrollmentRepo(session),
            commit=session.commit,
        )


async def get_reports() -> AsyncIterator[ProgressReports]:
    if db_engine.async_session_factory is None:
        yield ProgressReports(catalog_repo, progress_repo, enrollment_repo)
        return
    async with db_engine.session_scope() as session:
        yield ProgressReports(
            PgCatalogRepo(session),
            PgProgressRepo(session),
            PgEnrollmentRepo(session),
        )


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

_STATUS_BY_ERROR: list[tuple[type[LedgerError], int]] = [
    (UnknownLesson, status.HTTP_404_NOT_FOUND),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (NotEnrolled, status.HTTP_403_FORBIDDEN),
    (ConsistencyViolation, status.HTTP_409_CONFLICT),
    (AlreadyEnrolled, status.HTTP_409_CONFLICT),
    (LessonInUse, status.HTTP_409_CONFLICT),
    (SlugTaken, status.HTTP_409_CONFLICT),
    (CourseInUse, status.HTTP_409_CONFLICT),
    (InvalidInput, status.HTTP_422_UNPROCESSABLE_CONTENT),
]


def raise_http(exc: LedgerError) -> NoReturn:
    """Translate a ledger error into the matching HTTPException."""
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)),
        status.HTTP_400_BAD_REQUEST,
    )
    logger.warning("Request rejected code=%s: %s", exc.code, exc.message)
    raise HTTPException(
        status_code=status_code,
        detail={"code": exc.code, "message": exc.message},
    ) from None
