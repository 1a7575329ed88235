"""FastAPI dependencies for auth and service wiring."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.core.auth import decode_access_token
from aquacare.core.request_context import set_account_context
from aquacare.core.result import ErrorKind, Result
from aquacare.domain.services.contract_service import ContractService
from aquacare.persistence.database import get_db
from aquacare.persistence.models.web_account import WebAccount
from aquacare.persistence.repositories.web_account_repository import WebAccountRepository
from aquacare.settings import settings

security = HTTPBearer()

ADMIN_ROLE = "admin"

ERROR_STATUS = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.QUOTA_EXHAUSTED: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


async def get_current_account(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> WebAccount:
    """Get the web account behind a bearer JWT.

    Tokens issued under an older ``token_version`` are rejected.

    Raises:
        HTTPException: If authentication fails
    """
    payload = decode_access_token(credentials.credentials)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        account_id = int(payload.get("sub"))
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    account = await WebAccountRepository(db).get_by_id(account_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not found",
        )

    if payload.get("ver", 0) != account.token_version:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired, please log in again",
            headers={"WWW-Authenticate": "Bearer"},
        )

    set_account_context(account.id)
    return account


async def require_admin(
    current_account: Annotated[WebAccount, Depends(get_current_account)],
) -> WebAccount:
    """Require the admin role."""
    if current_account.role != ADMIN_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_account


async def require_worker_token(
    x_worker_token: Annotated[str | None, Header(alias="X-Worker-Token")] = None,
) -> None:
    """Check the shared secret on worker hooks, when one is configured."""
    if settings.worker_token and x_worker_token != settings.worker_token:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid worker token",
        )


async def get_contract_service(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ContractService:
    """Contract service bound to the request's session."""
    return ContractService.from_session(db, settings)


def unwrap_or_raise(result: Result):
    """Return a Result's value or raise the matching HTTPException."""
    if result.ok:
        return result.value
    raise HTTPException(
        status_code=ERROR_STATUS.get(result.error.kind, status.HTTP_400_BAD_REQUEST),
        detail={"error": result.error.kind.value, "message": result.error.message},
    )


CurrentAccount = Annotated[WebAccount, Depends(get_current_account)]
AdminAccount = Annotated[WebAccount, Depends(require_admin)]
ContractServiceDep = Annotated[ContractService, Depends(get_contract_service)]
