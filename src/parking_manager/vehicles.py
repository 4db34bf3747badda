"""Vehicle registration owned by individual users."""

from __future__ import annotations

from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from parking_manager.audit import record_action
from parking_manager.errors import Conflict, NotFound
from parking_manager.guard import Principal
from parking_manager.models import Vehicle
from parking_manager.pagination import PageParams, contains_ci, numeric_term, paginate

VEHICLE_FIELDS = ("plate_number", "vehicle_type", "size", "other_attributes")


def _with_approval(vehicle: Vehicle) -> dict[str, Any]:
    return {**vehicle.to_dict(), "approval_status": vehicle.approval_status()}


def _visible_vehicle(db: Session, principal: Principal, vehicle_id: int) -> Vehicle:
    stmt = select(Vehicle).options(selectinload(Vehicle.slot_requests)).where(Vehicle.id == vehicle_id)
    if not principal.is_admin:
        stmt = stmt.where(Vehicle.user_id == principal.id)
    vehicle = db.execute(stmt).scalar_one_or_none()
    if vehicle is None:
        raise NotFound("Vehicle not found")
    return vehicle


def create_vehicle(db: Session, principal: Principal, data: dict[str, Any]) -> dict[str, Any]:
    vehicle = Vehicle(user_id=principal.id, **{k: data.get(k) for k in VEHICLE_FIELDS})
    db.add(vehicle)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Plate number already exists") from exc
    db.refresh(vehicle)

    record_action(db, principal.id, f"Vehicle {vehicle.plate_number} created")
    return vehicle.to_dict()


def list_vehicles(db: Session, principal: Principal, params: PageParams) -> dict[str, Any]:
    stmt = select(Vehicle).options(selectinload(Vehicle.slot_requests))
    if not principal.is_admin:
        stmt = stmt.where(Vehicle.user_id == principal.id)

    term = params.term
    if term:
        conditions = [contains_ci(Vehicle.plate_number, term), contains_ci(Vehicle.vehicle_type, term)]
        vehicle_id = numeric_term(term)
        if vehicle_id is not None:
            conditions.append(Vehicle.id == vehicle_id)
        stmt = stmt.where(or_(*conditions))
    stmt = stmt.order_by(Vehicle.id.asc())

    result = paginate(db, stmt, params, _with_approval)
    record_action(db, principal.id, "Vehicles list viewed")
    return result


def get_vehicle(db: Session, principal: Principal, vehicle_id: int) -> dict[str, Any]:
    vehicle = _visible_vehicle(db, principal, vehicle_id)
    data = _with_approval(vehicle)
    record_action(db, principal.id, f"Vehicle ID {vehicle_id} viewed")
    return data


def update_vehicle(db: Session, principal: Principal, vehicle_id: int, data: dict[str, Any]) -> dict[str, Any]:
    # Only the owner edits, admins included.
    vehicle = db.execute(
        select(Vehicle).where(Vehicle.id == vehicle_id, Vehicle.user_id == principal.id)
    ).scalar_one_or_none()
    if vehicle is None:
        raise NotFound("Vehicle not found")

    for field in VEHICLE_FIELDS:
        if data.get(field) is not None:
            setattr(vehicle, field, data[field])
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Plate number already exists") from exc

    record_action(db, principal.id, f"Vehicle {vehicle.plate_number} updated")
    return vehicle.to_dict()


def delete_vehicle(db: Session, principal: Principal, vehicle_id: int) -> None:
    vehicle = _visible_vehicle(db, principal, vehicle_id)
    plate_number = vehicle.plate_number
    db.delete(vehicle)
    db.commit()
    record_action(db, principal.id, f"Vehicle {plate_number} deleted")
