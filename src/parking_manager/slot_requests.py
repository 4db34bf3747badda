"""Slot request workflow: create, list, edit, delete, approve and reject.

Approval reserves a compatible slot with two guarded updates inside one
transaction:

- the request moves ``pending -> approved`` only while it is still pending
- the slot moves ``available -> unavailable`` only while it is still available

Each guard is checked by affected-row count. A request that lost its pending
state aborts the approval; a slot that another approval took first rolls the
transaction back and the compatible-slot search runs again.

Notification emails are sent after the commit. A delivery failure never undoes
an approval or rejection; it is reported as ``emailStatus`` instead.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from parking_manager.audit import record_action
from parking_manager.config import get_settings
from parking_manager.database import utc_now
from parking_manager.email_sender import EmailSender
from parking_manager.errors import EmailDeliveryFailed, NoCompatibleSlot, NotFound, ValidationError
from parking_manager.guard import Principal
from parking_manager.models import (
    REQUEST_APPROVED,
    REQUEST_PENDING,
    REQUEST_REJECTED,
    SLOT_AVAILABLE,
    SLOT_UNAVAILABLE,
    ParkingSlot,
    SlotRequest,
    Vehicle,
)
from parking_manager.pagination import PageParams, contains_ci, paginate

logger = logging.getLogger(__name__)

EMAIL_SENT = "sent"
EMAIL_FAILED = "failed"

NOT_EDITABLE = "Request not found or not editable"
NOT_DELETABLE = "Request not found or not deletable"
ALREADY_PROCESSED = "Request not found or already processed"


@dataclass(frozen=True)
class DecisionOutcome:
    """Primary result of an approve/reject plus the soft delivery status."""

    message: str
    request: dict[str, Any]
    slot: dict[str, Any] | None
    email_status: str

    def to_response(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message, "request": self.request, "emailStatus": self.email_status}
        if self.slot is not None:
            payload["slot"] = self.slot
        return payload


def _owned_vehicle_ids(user_id: int):
    return select(Vehicle.id).where(Vehicle.user_id == user_id)


def _require_owned_vehicle(db: Session, user_id: int, vehicle_id: int) -> Vehicle:
    vehicle = db.execute(
        select(Vehicle).where(Vehicle.id == vehicle_id, Vehicle.user_id == user_id)
    ).scalar_one_or_none()
    if vehicle is None:
        raise NotFound("Vehicle not found")
    return vehicle


def _pending_request(db: Session, request_id: int) -> SlotRequest:
    slot_request = db.execute(
        select(SlotRequest)
        .options(joinedload(SlotRequest.vehicle).joinedload(Vehicle.owner))
        .where(SlotRequest.id == request_id, SlotRequest.request_status == REQUEST_PENDING)
    ).scalar_one_or_none()
    if slot_request is None:
        raise NotFound(ALREADY_PROCESSED)
    return slot_request


def _send_softly(send: Callable[[], None]) -> str:
    try:
        send()
    except EmailDeliveryFailed as exc:
        logger.warning("Notification email failed: %s", exc.details or exc.message)
        return EMAIL_FAILED
    return EMAIL_SENT


def create_request(db: Session, principal: Principal, vehicle_id: int) -> dict[str, Any]:
    _require_owned_vehicle(db, principal.id, vehicle_id)

    slot_request = SlotRequest(vehicle_id=vehicle_id, request_status=REQUEST_PENDING)
    db.add(slot_request)
    db.commit()
    db.refresh(slot_request)

    record_action(db, principal.id, f"Slot request created for vehicle {vehicle_id}")
    return slot_request.to_dict()


def list_requests(db: Session, principal: Principal, params: PageParams) -> dict[str, Any]:
    stmt = select(SlotRequest).join(SlotRequest.vehicle).options(joinedload(SlotRequest.vehicle))
    if params.term:
        stmt = stmt.where(
            or_(
                contains_ci(Vehicle.plate_number, params.term),
                contains_ci(SlotRequest.request_status, params.term),
            )
        )
    if not principal.is_admin:
        stmt = stmt.where(Vehicle.user_id == principal.id)
    stmt = stmt.order_by(SlotRequest.id.asc())

    result = paginate(db, stmt, params, lambda r: r.to_dict(include_vehicle=True))
    record_action(db, principal.id, "Slot requests list viewed")
    return result


def update_request(db: Session, principal: Principal, request_id: int, vehicle_id: int) -> dict[str, Any]:
    _require_owned_vehicle(db, principal.id, vehicle_id)

    result = db.execute(
        update(SlotRequest)
        .where(
            SlotRequest.id == request_id,
            SlotRequest.request_status == REQUEST_PENDING,
            SlotRequest.vehicle_id.in_(_owned_vehicle_ids(principal.id)),
        )
        .values(vehicle_id=vehicle_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise NotFound(NOT_EDITABLE)
    db.commit()

    record_action(db, principal.id, f"Slot request {request_id} updated")
    return db.get(SlotRequest, request_id).to_dict()


def delete_request(db: Session, principal: Principal, request_id: int) -> None:
    result = db.execute(
        delete(SlotRequest)
        .where(
            SlotRequest.id == request_id,
            SlotRequest.request_status == REQUEST_PENDING,
            SlotRequest.vehicle_id.in_(_owned_vehicle_ids(principal.id)),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise NotFound(NOT_DELETABLE)
    db.commit()

    record_action(db, principal.id, f"Slot request {request_id} deleted")


def find_compatible_slot(db: Session, vehicle_type: str, size: str) -> ParkingSlot | None:
    """First available slot accepting this vehicle type and size, if any."""
    return db.execute(
        select(ParkingSlot)
        .where(
            ParkingSlot.vehicle_type == vehicle_type,
            ParkingSlot.size == size,
            ParkingSlot.status == SLOT_AVAILABLE,
        )
        .order_by(ParkingSlot.id.asc())
        .limit(1)
    ).scalar_one_or_none()


def reserve_slot(db: Session, request_id: int, slot_id: int) -> bool:
    """Approve the request and hold the slot atomically.

    Returns False when the slot was no longer available (nothing is changed).
    Raises NotFound when the request is no longer pending.
    """
    try:
        claimed = db.execute(
            update(SlotRequest)
            .where(SlotRequest.id == request_id, SlotRequest.request_status == REQUEST_PENDING)
            .values(request_status=REQUEST_APPROVED, slot_id=slot_id, approved_at=utc_now())
            .execution_options(synchronize_session=False)
        ).rowcount
        if claimed == 0:
            db.rollback()
            raise NotFound(ALREADY_PROCESSED)

        held = db.execute(
            update(ParkingSlot)
            .where(ParkingSlot.id == slot_id, ParkingSlot.status == SLOT_AVAILABLE)
            .values(status=SLOT_UNAVAILABLE)
            .execution_options(synchronize_session=False)
        ).rowcount
        if held == 0:
            db.rollback()
            return False

        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return True


def approve_request(
    db: Session,
    sender: EmailSender,
    principal: Principal,
    request_id: int,
) -> DecisionOutcome:
    slot_request = _pending_request(db, request_id)
    vehicle = slot_request.vehicle
    plate_number = vehicle.plate_number
    owner_email = vehicle.owner.email

    slot: ParkingSlot | None = None
    attempts = get_settings().approval_max_attempts
    for attempt in range(1, attempts + 1):
        candidate = find_compatible_slot(db, vehicle.vehicle_type, vehicle.size)
        if candidate is None:
            break
        candidate_id = candidate.id
        if reserve_slot(db, request_id, candidate_id):
            slot = db.get(ParkingSlot, candidate_id)
            break
        logger.info(
            "Slot %s was taken before request %s could hold it (attempt %d/%d)",
            candidate_id,
            request_id,
            attempt,
            attempts,
        )

    if slot is None:
        raise NoCompatibleSlot()

    slot_data = slot.to_dict()
    email_status = _send_softly(
        lambda: sender.send_approval_email(owner_email, slot_data["slot_number"], plate_number, slot_data["location"])
    )

    record_action(
        db,
        principal.id,
        f"Slot request {request_id} approved, assigned slot {slot_data['slot_number']}, email {email_status}",
    )
    return DecisionOutcome(
        message="Request approved",
        request=db.get(SlotRequest, request_id).to_dict(),
        slot=slot_data,
        email_status=email_status,
    )


def reject_request(
    db: Session,
    sender: EmailSender,
    principal: Principal,
    request_id: int,
    reason: str | None,
) -> DecisionOutcome:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Rejection reason is required")

    slot_request = _pending_request(db, request_id)
    vehicle = slot_request.vehicle
    plate_number = vehicle.plate_number
    owner_email = vehicle.owner.email

    # Any slot of the vehicle's kind, occupied or not, only to give the email a location.
    context_slot = db.execute(
        select(ParkingSlot)
        .where(ParkingSlot.vehicle_type == vehicle.vehicle_type, ParkingSlot.size == vehicle.size)
        .order_by(ParkingSlot.id.asc())
        .limit(1)
    ).scalar_one_or_none()
    location = (context_slot.location if context_slot else None) or "unknown"

    rejected = db.execute(
        update(SlotRequest)
        .where(SlotRequest.id == request_id, SlotRequest.request_status == REQUEST_PENDING)
        .values(request_status=REQUEST_REJECTED)
        .execution_options(synchronize_session=False)
    ).rowcount
    if rejected == 0:
        db.rollback()
        raise NotFound(ALREADY_PROCESSED)
    db.commit()

    email_status = _send_softly(lambda: sender.send_rejection_email(owner_email, plate_number, location, reason))

    record_action(
        db,
        principal.id,
        f"Slot request {request_id} rejected with reason: {reason}, email {email_status}",
    )
    return DecisionOutcome(
        message="Request rejected",
        request=db.get(SlotRequest, request_id).to_dict(),
        slot=None,
        email_status=email_status,
    )
