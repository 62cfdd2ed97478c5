from fastapi import HTTPException, status

from levelup_api.errors import (
    EntityNotFoundError,
    InsufficientPointsError,
    InvalidTransitionError,
    LoyaltyError,
    NotRedeemableError,
    OutOfStockError,
    PersistenceUnavailableError,
    ProductConfigurationError,
)


def to_http_exception(exc: LoyaltyError) -> HTTPException:
    """Map a domain error onto the status code the storefront expects."""

    if isinstance(exc, EntityNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (InsufficientPointsError, OutOfStockError, InvalidTransitionError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, (NotRedeemableError, ProductConfigurationError)):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(exc, PersistenceUnavailableError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No pudimos guardar los cambios, intenta nuevamente",
            headers={"Retry-After": "5"},
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
