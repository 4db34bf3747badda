"""FastAPI application exposing auth, users, vehicles, slots, requests and logs."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import os
from typing import Any

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from parking_manager import accounts, audit, slot_requests, slots, vehicles
from parking_manager.config import configure_logging, get_settings
from parking_manager.database import get_db, init_db
from parking_manager.email_sender import EmailSender, get_email_sender
from parking_manager.errors import ServerError, ServiceError
from parking_manager.guard import Principal, check_role, principal_from_header, requires_role
from parking_manager.http_security import apply_security_headers, rate_limited_auth
from parking_manager.pagination import PageParams
from parking_manager.schemas import (
    LoginIn,
    ProfileUpdateIn,
    RegisterIn,
    RejectIn,
    ResendOtpIn,
    SlotBulkIn,
    SlotRequestIn,
    SlotUpdateIn,
    VehicleIn,
    VehicleUpdateIn,
    VerifyOtpIn,
)

logger = logging.getLogger(__name__)

MAX_PAGE = 1_000_000
MAX_LIMIT = 100

any_user = requires_role("any")
admin_only = requires_role("admin")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging()
    init_db()
    yield


def _docs_enabled() -> bool:
    return os.getenv("APP_ENV", "dev").strip().lower() != "prod"


app = FastAPI(
    title="Parking Management API",
    lifespan=lifespan,
    docs_url="/docs" if _docs_enabled() else None,
    redoc_url=None,
    openapi_url="/openapi.json" if _docs_enabled() else None,
)


@app.middleware("http")
async def _security_headers_middleware(req: Request, call_next):
    resp = await call_next(req)
    apply_security_headers(req, resp)
    return resp


@app.exception_handler(ServiceError)
async def handle_service_error(_req: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(_req: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(_req: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})


@app.exception_handler(SQLAlchemyError)
async def handle_store_error(_req: Request, exc: SQLAlchemyError):
    logger.exception("Database error")
    error = ServerError(details=str(exc))
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


@app.exception_handler(Exception)
async def handle_unexpected_exception(_req: Request, exc: Exception):
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def page_params(
    page: int = Query(default=1, ge=1, le=MAX_PAGE),
    limit: int = Query(default=10, ge=1),
    search: str = Query(default=""),
) -> PageParams:
    return PageParams(page=page, limit=min(limit, MAX_LIMIT), search=search)


def slot_mutation_principal(authorization: str | None = Header(default=None)) -> Principal:
    required = "admin" if get_settings().slot_mutations_require_admin else "any"
    return check_role(principal_from_header(authorization), required)


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "service": "parking_manager"}


# Auth


@app.post("/auth/register", status_code=201, dependencies=[Depends(rate_limited_auth)])
def register(
    payload: RegisterIn,
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> dict[str, Any]:
    user = accounts.register(db, sender, payload.name, payload.email, payload.password)
    return {"message": "User registered, OTP sent to email", "userId": user.id}


@app.post("/auth/verify-otp", dependencies=[Depends(rate_limited_auth)])
def verify_otp(payload: VerifyOtpIn, db: Session = Depends(get_db)) -> dict[str, Any]:
    accounts.verify_otp(db, payload.userId, payload.otpCode)
    return {"message": "OTP verified, user registration completed"}


@app.post("/auth/resend-otp", dependencies=[Depends(rate_limited_auth)])
def resend_otp(
    payload: ResendOtpIn,
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> dict[str, Any]:
    accounts.resend_otp(db, sender, payload.userId)
    return {"message": "OTP resent to email"}


@app.post("/auth/login", dependencies=[Depends(rate_limited_auth)])
def login(payload: LoginIn, db: Session = Depends(get_db)) -> dict[str, Any]:
    return accounts.login(db, payload.email, payload.password)


# Users


@app.get("/users/me")
def get_me(principal: Principal = Depends(any_user), db: Session = Depends(get_db)) -> dict[str, Any]:
    return accounts.get_profile(db, principal.id)


@app.patch("/users/me")
def update_me(
    payload: ProfileUpdateIn,
    principal: Principal = Depends(any_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return accounts.update_profile(db, principal.id, **payload.model_dump())


@app.get("/users")
def list_users(
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return accounts.list_users(db, principal.id, params)


@app.delete("/users/{user_id}")
def delete_user(
    user_id: int,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    accounts.delete_user(db, principal.id, user_id)
    return {"message": "User deleted"}


# Vehicles


@app.post("/vehicles", status_code=201)
def create_vehicle(
    payload: VehicleIn,
    principal: Principal = Depends(any_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return vehicles.create_vehicle(db, principal, payload.model_dump())


@app.get("/vehicles")
def list_vehicles(
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(any_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return vehicles.list_vehicles(db, principal, params)


@app.get("/vehicles/{vehicle_id}")
def get_vehicle(
    vehicle_id: int,
    principal: Principal = Depends(any_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return vehicles.get_vehicle(db, principal, vehicle_id)


@app.patch("/vehicles/{vehicle_id}")
def update_vehicle(
    vehicle_id: int,
    payload: VehicleUpdateIn,
    principal: Principal = Depends(any_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return vehicles.update_vehicle(db, principal, vehicle_id, payload.model_dump())


@app.delete("/vehicles/{vehicle_id}")
def delete_vehicle(
    vehicle_id: int,
    principal: Principal = Depends(any_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    vehicles.delete_vehicle(db, principal, vehicle_id)
    return {"message": "Vehicle deleted"}


# Slots


@app.post("/slots/bulk", status_code=201)
def bulk_create_slots(
    payload: SlotBulkIn,
    principal: Principal = Depends(slot_mutation_principal),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return slots.bulk_create_slots(db, principal, [slot.model_dump() for slot in payload.slots])


@app.get("/slots")
def list_slots(
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(any_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return slots.list_slots(db, principal, params)


@app.patch("/slots/{slot_id}")
def update_slot(
    slot_id: int,
    payload: SlotUpdateIn,
    principal: Principal = Depends(slot_mutation_principal),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return slots.update_slot(db, principal, slot_id, payload.model_dump())


@app.delete("/slots/{slot_id}")
def delete_slot(
    slot_id: int,
    principal: Principal = Depends(slot_mutation_principal),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    slots.delete_slot(db, principal, slot_id)
    return {"message": "Slot deleted"}


# Slot requests


@app.post("/requests", status_code=201)
def create_request(
    payload: SlotRequestIn,
    principal: Principal = Depends(any_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return slot_requests.create_request(db, principal, payload.vehicle_id)


@app.get("/requests")
def list_requests(
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(any_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return slot_requests.list_requests(db, principal, params)


@app.patch("/requests/{request_id}")
def update_request(
    request_id: int,
    payload: SlotRequestIn,
    principal: Principal = Depends(any_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return slot_requests.update_request(db, principal, request_id, payload.vehicle_id)


@app.delete("/requests/{request_id}")
def delete_request(
    request_id: int,
    principal: Principal = Depends(any_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    slot_requests.delete_request(db, principal, request_id)
    return {"message": "Request deleted"}


@app.post("/requests/{request_id}/approve")
def approve_request(
    request_id: int,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> dict[str, Any]:
    return slot_requests.approve_request(db, sender, principal, request_id).to_response()


@app.post("/requests/{request_id}/reject")
def reject_request(
    request_id: int,
    payload: RejectIn,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> dict[str, Any]:
    return slot_requests.reject_request(db, sender, principal, request_id, payload.reason).to_response()


# Logs


@app.get("/logs")
def list_logs(
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return audit.list_logs(db, principal.id, params)
