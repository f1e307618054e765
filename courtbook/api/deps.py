from typing import Annotated
from fastapi import BackgroundTasks, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from ..core.auth import ActorContext, actor_from_claims
from ..core.security import decode_access_token
from ..services.authorization import AuthorizationOracle, RoleAuthorizationOracle
from ..services.booking_service import BookingController
from ..services.notification_service import (
    BookingEventPublisher,
    EmailNotificationSink,
    NotificationSink,
)


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


def get_optional_actor(
    token: Annotated[str | None, Depends(oauth2_scheme)],
) -> ActorContext | None:
    if not token:
        return None
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    try:
        payload = decode_access_token(token)
        return actor_from_claims(payload)
    except (JWTError, ValueError, TypeError) as exc:
        raise credentials_exception from exc


def get_current_actor(
    actor: Annotated[ActorContext | None, Depends(get_optional_actor)],
) -> ActorContext:
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return actor


def get_notification_sink() -> NotificationSink:
    return EmailNotificationSink()


def get_authorizer() -> AuthorizationOracle:
    return RoleAuthorizationOracle()


def get_booking_controller(
    background_tasks: BackgroundTasks,
    sink: Annotated[NotificationSink, Depends(get_notification_sink)],
    authorizer: Annotated[AuthorizationOracle, Depends(get_authorizer)],
) -> BookingController:
    publisher = BookingEventPublisher(sink, schedule=background_tasks.add_task)
    return BookingController(publisher=publisher, authorizer=authorizer)
