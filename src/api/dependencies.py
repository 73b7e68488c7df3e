"""FastAPI dependencies resolving the validation services from app state."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from src.services.validation import ValidationServices


def get_services(request: Request) -> ValidationServices:
    """Return the services built by the application lifespan.

    Raises:
        HTTPException: 503 when the lifespan has not built the services.
    """
    services: ValidationServices | None = getattr(
        request.app.state, "services", None
    )
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Validation services are not initialized",
        )
    return services


Services = Annotated[ValidationServices, Depends(get_services)]
