"""ORM models for users, OTP codes, vehicles, slots, slot requests and audit logs."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from parking_manager.database import Base, utc_now

ROLE_USER = "user"
ROLE_ADMIN = "admin"

SLOT_AVAILABLE = "available"
SLOT_UNAVAILABLE = "unavailable"

REQUEST_PENDING = "pending"
REQUEST_APPROVED = "approved"
REQUEST_REJECTED = "rejected"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default=ROLE_USER)
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    vehicles = relationship("Vehicle", back_populates="owner", cascade="all, delete-orphan")
    otp_codes = relationship("OtpCode", back_populates="user", cascade="all, delete-orphan")
    logs = relationship("LogEntry", back_populates="user")

    def summary(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class OtpCode(Base):
    __tablename__ = "otp_codes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    otp_code = Column(String(6), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    is_used = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    user = relationship("User", back_populates="otp_codes")


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plate_number = Column(String(32), unique=True, nullable=False)
    vehicle_type = Column(String(64), nullable=False)
    size = Column(String(32), nullable=False)
    other_attributes = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    owner = relationship("User", back_populates="vehicles")
    slot_requests = relationship(
        "SlotRequest",
        back_populates="vehicle",
        cascade="all, delete-orphan",
        order_by="SlotRequest.id",
    )

    def approval_status(self) -> str | None:
        if any(r.request_status == REQUEST_APPROVED for r in self.slot_requests):
            return REQUEST_APPROVED
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "plate_number": self.plate_number,
            "vehicle_type": self.vehicle_type,
            "size": self.size,
            "other_attributes": self.other_attributes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ParkingSlot(Base):
    __tablename__ = "parking_slots"

    id = Column(Integer, primary_key=True, index=True)
    slot_number = Column(String(32), unique=True, nullable=False)
    size = Column(String(32), nullable=False)
    vehicle_type = Column(String(64), nullable=False)
    location = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default=SLOT_AVAILABLE, index=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    slot_requests = relationship("SlotRequest", back_populates="slot")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "slot_number": self.slot_number,
            "size": self.size,
            "vehicle_type": self.vehicle_type,
            "location": self.location,
            "status": self.status,
        }

    def __repr__(self):
        return f"<ParkingSlot(id={self.id}, slot_number={self.slot_number}, status={self.status})>"


class SlotRequest(Base):
    __tablename__ = "slot_requests"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    slot_id = Column(Integer, ForeignKey("parking_slots.id", ondelete="SET NULL"), nullable=True)
    request_status = Column(String(16), nullable=False, default=REQUEST_PENDING, index=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    vehicle = relationship("Vehicle", back_populates="slot_requests")
    slot = relationship("ParkingSlot", back_populates="slot_requests")

    def to_dict(self, include_vehicle: bool = False) -> dict:
        data = {
            "id": self.id,
            "vehicleId": self.vehicle_id,
            "slot_id": self.slot_id,
            "request_status": self.request_status,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_vehicle and self.vehicle is not None:
            data["vehicle"] = {
                "plate_number": self.vehicle.plate_number,
                "vehicle_type": self.vehicle.vehicle_type,
            }
        return data


class LogEntry(Base):
    __tablename__ = "logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now, index=True)

    user = relationship("User", back_populates="logs")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "action": self.action,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "user": (
                {"id": self.user.id, "name": self.user.name, "email": self.user.email}
                if self.user is not None
                else None
            ),
        }
