from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from ...api import deps
from ...core.auth import ActorContext
from ...core.constants import BRANCH_PAGE_SIZE, DEFAULT_PAGE_SIZE
from ...core.errors import (
    BookingError,
    BookingNotFound,
    BranchNotFound,
    DuplicateRequest,
    Forbidden,
    ResourceUnavailable,
    SlotTaken,
)
from ...db.models.booking import BookingStatus
from ...db.session import get_db
from ...db import schemas
from ...services.booking_service import BookingController, BookingRequest
from ...services.booking_store import BookingPage
from ...services.claimant_service import GuestContact

router = APIRouter(tags=["bookings"])

Controller = Annotated[BookingController, Depends(deps.get_booking_controller)]


ERROR_STATUS: dict[type[BookingError], int] = {
    ResourceUnavailable: status.HTTP_404_NOT_FOUND,
    BookingNotFound: status.HTTP_404_NOT_FOUND,
    BranchNotFound: status.HTTP_404_NOT_FOUND,
    DuplicateRequest: status.HTTP_409_CONFLICT,
    SlotTaken: status.HTTP_409_CONFLICT,
    Forbidden: status.HTTP_403_FORBIDDEN,
}


def _http_error(exc: BookingError) -> HTTPException:
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=str(exc))


def _page(result: BookingPage) -> schemas.BookingList:
    return schemas.BookingList(
        data=[schemas.Booking.model_validate(item) for item in result.items],
        page=result.page,
        limit=result.limit,
        total=result.total,
        total_pages=result.total_pages,
    )


@router.post("/bookings", response_model=schemas.Booking, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: schemas.BookingCreate,
    controller: Controller,
    db: Session = Depends(get_db),
    actor: ActorContext | None = Depends(deps.get_optional_actor),
):
    guest = None
    if payload.guest is not None:
        guest = GuestContact(
            email=payload.guest.email,
            first_name=payload.guest.first_name,
            last_name=payload.guest.last_name,
            phone=payload.guest.phone,
        )
    request = BookingRequest(
        resource_id=payload.resource_id,
        start_at=payload.start_at,
        end_at=payload.end_at,
        source=payload.source,
        notes=payload.notes,
        guest=guest,
        promo_code=payload.promo_code,
    )
    try:
        return controller.create_booking(db, request, actor)
    except BookingError as exc:
        raise _http_error(exc) from exc


@router.get("/bookings/{booking_id}", response_model=schemas.Booking)
def get_booking(
    booking_id: int,
    controller: Controller,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(deps.get_current_actor),
):
    try:
        return controller.get_booking(db, booking_id, actor)
    except BookingError as exc:
        raise _http_error(exc) from exc


@router.post("/bookings/{booking_id}/cancel")
def cancel_booking(
    booking_id: int,
    payload: schemas.BookingCancel,
    controller: Controller,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(deps.get_current_actor),
):
    try:
        controller.cancel_booking(db, booking_id, actor, reason=payload.reason)
    except BookingError as exc:
        raise _http_error(exc) from exc
    return {"success": True, "message": "Booking cancelled successfully"}


@router.put("/bookings/{booking_id}/confirm", response_model=schemas.BookingConfirmed)
def confirm_booking(
    booking_id: int,
    controller: Controller,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(deps.get_current_actor),
):
    try:
        result = controller.confirm_booking(db, booking_id, actor)
    except BookingError as exc:
        raise _http_error(exc) from exc
    booking = schemas.Booking.model_validate(result.booking)
    return schemas.BookingConfirmed(**booking.model_dump(), rejected_count=result.rejected_count)


@router.put("/bookings/{booking_id}/reject", response_model=schemas.Booking)
def reject_booking(
    booking_id: int,
    payload: schemas.BookingReject,
    controller: Controller,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(deps.get_current_actor),
):
    try:
        return controller.reject_booking(db, booking_id, actor, payload.reason)
    except BookingError as exc:
        raise _http_error(exc) from exc


@router.get("/me/bookings", response_model=schemas.BookingList)
def list_my_bookings(
    controller: Controller,
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(deps.get_current_actor),
):
    result = controller.list_my_bookings(db, actor, status=status_filter, page=page, limit=limit)
    return _page(result)


@router.get("/branches/{branch_id}/bookings", response_model=schemas.BookingList)
def list_branch_bookings(
    branch_id: int,
    controller: Controller,
    date_from: date | None = Query(default=None, alias="from"),
    date_to: date | None = Query(default=None, alias="to"),
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    resource_id: int | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=BRANCH_PAGE_SIZE, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(deps.get_current_actor),
):
    try:
        result = controller.list_branch_bookings(
            db,
            branch_id,
            actor,
            date_from=date_from,
            date_to=date_to,
            status=status_filter,
            resource_id=resource_id,
            page=page,
            limit=limit,
        )
    except BookingError as exc:
        raise _http_error(exc) from exc
    return _page(result)
