"""Parking slot inventory: bulk insert, listing, update and delete."""

from __future__ import annotations

from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parking_manager.audit import record_action
from parking_manager.errors import Conflict, NotFound
from parking_manager.guard import Principal
from parking_manager.models import SLOT_AVAILABLE, ParkingSlot
from parking_manager.pagination import PageParams, contains_ci, paginate

SLOT_FIELDS = ("slot_number", "size", "vehicle_type", "location", "status")


def bulk_create_slots(db: Session, principal: Principal, slots: list[dict[str, Any]]) -> dict[str, Any]:
    """Insert slots, silently skipping slot numbers that already exist."""
    numbers = [slot["slot_number"] for slot in slots]
    existing = set(
        db.execute(select(ParkingSlot.slot_number).where(ParkingSlot.slot_number.in_(numbers))).scalars()
    )

    created: list[ParkingSlot] = []
    skipped: list[str] = []
    seen: set[str] = set()
    for slot in slots:
        number = slot["slot_number"]
        if number in existing or number in seen:
            skipped.append(number)
            continue
        seen.add(number)
        created.append(
            ParkingSlot(
                slot_number=number,
                size=slot["size"],
                vehicle_type=slot["vehicle_type"],
                location=slot.get("location"),
                status=SLOT_AVAILABLE,
            )
        )

    db.add_all(created)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Slot number already exists") from exc
    for slot in created:
        db.refresh(slot)

    record_action(db, principal.id, f"Bulk created {len(slots)} slots")
    return {"data": [slot.to_dict() for slot in created], "skipped": skipped}


def list_slots(db: Session, principal: Principal, params: PageParams) -> dict[str, Any]:
    stmt = select(ParkingSlot)
    if params.term:
        stmt = stmt.where(
            or_(
                contains_ci(ParkingSlot.slot_number, params.term),
                contains_ci(ParkingSlot.vehicle_type, params.term),
            )
        )
    if not principal.is_admin:
        stmt = stmt.where(ParkingSlot.status == SLOT_AVAILABLE)
    stmt = stmt.order_by(ParkingSlot.id.asc())

    result = paginate(db, stmt, params, ParkingSlot.to_dict)
    record_action(db, principal.id, "Slots list viewed")
    return result


def update_slot(db: Session, principal: Principal, slot_id: int, data: dict[str, Any]) -> dict[str, Any]:
    slot = db.get(ParkingSlot, slot_id)
    if slot is None:
        raise NotFound("Slot not found")

    for field in SLOT_FIELDS:
        if data.get(field) is not None:
            setattr(slot, field, data[field])
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Slot number already exists") from exc

    record_action(db, principal.id, f"Slot {slot.slot_number} updated")
    return slot.to_dict()


def delete_slot(db: Session, principal: Principal, slot_id: int) -> None:
    slot = db.get(ParkingSlot, slot_id)
    if slot is None:
        raise NotFound("Slot not found")
    slot_number = slot.slot_number
    db.delete(slot)
    db.commit()
    record_action(db, principal.id, f"Slot {slot_number} deleted")
