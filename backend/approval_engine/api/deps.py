"""API Dependencies - Common dependencies for routes"""
from typing import Optional
from fastapi import Header, HTTPException, status
from pydantic import ValidationError as PydanticValidationError

from ..domain.models import ActorContext
from ..domain.errors import AuthenticationError
from ..utils.logger import set_correlation_id
from ..utils.idgen import generate_correlation_id


async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """
    Get or generate correlation ID for request tracing

    If client provides X-Correlation-Id, use it.
    Otherwise generate a new one.
    """
    correlation_id = x_correlation_id or generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


def _actor_from_headers(
    user_id: Optional[str],
    role: Optional[str],
    organization_id: Optional[str]
) -> ActorContext:
    """Build the actor asserted by the upstream auth gateway"""
    missing = [
        name for name, value in (
            ("X-User-Id", user_id),
            ("X-User-Role", role),
            ("X-Organization-Id", organization_id),
        ) if not value
    ]
    if missing:
        raise AuthenticationError(
            "Caller identity headers are missing",
            details={"missing_headers": missing}
        )

    try:
        return ActorContext(user_id=user_id, role=role.lower(), organization_id=organization_id)
    except PydanticValidationError:
        raise AuthenticationError(
            f"Unknown role '{role}'",
            details={"role": role}
        )


async def get_current_user_dep(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
    x_organization_id: Optional[str] = Header(None, alias="X-Organization-Id")
) -> ActorContext:
    """
    Dependency to get current user from the gateway identity headers

    Raises:
        HTTPException: 401 if a header is missing or the role is unknown
    """
    try:
        return _actor_from_headers(x_user_id, x_user_role, x_organization_id)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.to_dict()
        )
