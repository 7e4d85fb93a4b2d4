import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from fastapi import FastAPI, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm

from api.schemas import (
    # Reservation
    CreateReservationRequest, CheckInRequest, CheckOutRequest, CancelReservationRequest,
    PaymentRequest, ExtendStayRequest, ChangeRoomRequest, ReservationResponse,
    # Ledger / billing
    LedgerEntryResponse, CheckOutResponse, CancellationResponse, RefundResponse,
    ActivityLogResponse,
    # Room service / housekeeping
    PlaceOrderRequest, UpdateOrderStatusRequest, RoomServiceOrderResponse, RoomResponse,
    # Settings / cron
    HotelPolicyRequest, SweepReportResponse,
    # Auth
    Token, UserResponse
)
from api.dependencies import (
    fake_users_db, get_current_active_user, get_user, require_cron_secret
)
from application.services import (
    PolicyService, ReservationService, RoomService, RoomServiceOrderService, UnitOfWorkFactory
)
from application.sweep import ReservationSweepJob
from domain.auth import User
from domain.enums import ReservationStatus
from domain.errors import (
    NotFoundError, PermissionDenied, PolicyNotConfigured, ReservationError,
    StateConflictError, TransactionFailed
)
from domain.value_objects import HotelPolicy
from infrastructure.config import get_settings
from infrastructure.logging_config import setup_logging
from infrastructure.repositories.in_memory_repositories import InMemoryDatabase, in_memory_uow_factory
from infrastructure.security import verify_password, create_access_token
from infrastructure.seed import seed_demo_inventory

settings = get_settings()
setup_logging(settings)
logger = logging.getLogger(__name__)

# Storage: SQLAlchemy when DATABASE_URL is set, otherwise the in-memory store
engine = None
if settings.DATABASE_URL:
    from infrastructure.database import create_engine, create_session_factory, init_db
    from infrastructure.repositories.sqlalchemy_repositories import sqlalchemy_uow_factory

    engine = create_engine(settings)
    uow_factory: UnitOfWorkFactory = sqlalchemy_uow_factory(create_session_factory(engine))
else:
    database = InMemoryDatabase()
    uow_factory = in_memory_uow_factory(database)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if engine is not None:
        await init_db(engine)
    await PolicyService(uow_factory).get_or_create_policy()
    if settings.SEED_DEMO_INVENTORY:
        await seed_demo_inventory(uow_factory())
    logger.info("%s started (%s)", settings.APP_NAME, settings.ENVIRONMENT)
    yield
    if engine is not None:
        await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Reservation lifecycle and billing core for the hotel back office",
    version="1.0.0",
    debug=settings.DEBUG,
    lifespan=lifespan
)


# Dependency injection
def get_uow_factory() -> UnitOfWorkFactory:
    return uow_factory

def get_reservation_service(factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> ReservationService:
    return ReservationService(factory)

def get_room_service_order_service(factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> RoomServiceOrderService:
    return RoomServiceOrderService(factory)

def get_room_service(factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> RoomService:
    return RoomService(factory)

def get_policy_service(factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> PolicyService:
    return PolicyService(factory)

def get_sweep_job(
    factory: UnitOfWorkFactory = Depends(get_uow_factory),
    service: ReservationService = Depends(get_reservation_service)
) -> ReservationSweepJob:
    return ReservationSweepJob(factory, service)


def _to_http_exception(error: ValueError) -> HTTPException:
    """Map a domain error onto the matching HTTP status"""
    if not isinstance(error, ReservationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, PermissionDenied):
        status_code = 403
    elif isinstance(error, NotFoundError):
        status_code = 404
    elif isinstance(error, StateConflictError):
        status_code = 409
    elif isinstance(error, PolicyNotConfigured):
        status_code = 503
    elif isinstance(error, TransactionFailed):
        status_code = 500
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail=error.to_dict())

# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

@app.get("/api/enums/reservation-status", tags=["Enum Reference"])
async def get_reservation_statuses():
    """Get all ReservationStatus enum values"""
    return {
        "values": [item.name for item in ReservationStatus],
        "description": "Reservation status values: " + ", ".join(item.name for item in ReservationStatus)
    }

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = get_user(fake_users_db, form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token = create_access_token(
        data={"sub": user.username},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return {"access_token": access_token, "token_type": "bearer"}

@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return current_user

# ============================================================================
# RESERVATION ENDPOINTS
# ============================================================================

@app.post("/api/reservations", response_model=ReservationResponse, status_code=201, tags=["Reservations"])
async def create_reservation(
    request: CreateReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Create new reservation; an advance payment confirms it"""
    try:
        reservation = await service.create_reservation(
            current_user,
            room_type_id=request.room_type_id,
            guest_id=request.guest_id,
            check_in=request.check_in,
            check_out=request.check_out,
            adults=request.adults,
            children=request.children,
            extra_beds=request.extra_beds,
            advance_amount=request.advance_amount,
            payment_mode_id=request.payment_mode_id,
            notes=request.notes
        )
        return _reservation_to_response(reservation)
    except ValueError as e:
        raise _to_http_exception(e)

@app.get("/api/reservations", response_model=List[ReservationResponse], tags=["Reservations"])
async def get_all_reservations(
    status: Optional[ReservationStatus] = None,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """List reservations, optionally filtered by status"""
    reservations = await service.list_reservations(status)
    return [_reservation_to_response(r) for r in reservations]

@app.get("/api/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get reservation by ID"""
    try:
        return _reservation_to_response(await service.get_reservation(reservation_id))
    except ValueError as e:
        raise _to_http_exception(e)

@app.get("/api/reservations/{reservation_id}/ledger", response_model=List[LedgerEntryResponse], tags=["Reservations"])
async def get_reservation_ledger(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Payments and refunds recorded against a reservation"""
    try:
        entries = await service.get_ledger(reservation_id)
        return [LedgerEntryResponse.model_validate(e) for e in entries]
    except ValueError as e:
        raise _to_http_exception(e)

@app.get("/api/reservations/{reservation_id}/activity", response_model=List[ActivityLogResponse], tags=["Reservations"])
async def get_reservation_activity(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Audit trail of a reservation"""
    try:
        entries = await service.get_activity_log(reservation_id)
        return [ActivityLogResponse.model_validate(e) for e in entries]
    except ValueError as e:
        raise _to_http_exception(e)

@app.post("/api/reservations/{reservation_id}/check-in", response_model=ReservationResponse, tags=["Reservations"])
async def check_in_guest(
    reservation_id: UUID,
    request: CheckInRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Check in guest to a physical room"""
    try:
        reservation = await service.check_in(current_user, reservation_id, request.room_id)
        return _reservation_to_response(reservation)
    except ValueError as e:
        raise _to_http_exception(e)

@app.post("/api/reservations/{reservation_id}/check-out", response_model=CheckOutResponse, tags=["Reservations"])
async def check_out_guest(
    reservation_id: UUID,
    request: CheckOutRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Check out guest, settle and issue the bill"""
    try:
        result = await service.check_out(
            current_user, reservation_id, request.settled_amount, request.payment_mode_id
        )
        return CheckOutResponse.model_validate(result.model_dump())
    except ValueError as e:
        raise _to_http_exception(e)

@app.post("/api/reservations/{reservation_id}/cancel", response_model=CancellationResponse, tags=["Reservations"])
async def cancel_reservation(
    reservation_id: UUID,
    request: CancelReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Cancel reservation and refund what policy allows"""
    try:
        result = await service.cancel(current_user, reservation_id, request.reason)
        return CancellationResponse.model_validate(result.model_dump())
    except ValueError as e:
        raise _to_http_exception(e)

@app.post("/api/reservations/{reservation_id}/payments", response_model=LedgerEntryResponse, status_code=201, tags=["Reservations"])
async def record_payment(
    reservation_id: UUID,
    request: PaymentRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Record a payment; the first payment confirms an unconfirmed booking"""
    try:
        entry = await service.record_payment(
            current_user, reservation_id, request.amount, request.payment_mode_id
        )
        return LedgerEntryResponse.model_validate(entry)
    except ValueError as e:
        raise _to_http_exception(e)

@app.post("/api/reservations/{reservation_id}/refund", response_model=RefundResponse, tags=["Reservations"])
async def refund_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Refund the remaining entitlement, or approve a pending no-show refund"""
    try:
        result = await service.refund(current_user, reservation_id)
        return RefundResponse.model_validate(result.model_dump())
    except ValueError as e:
        raise _to_http_exception(e)

@app.post("/api/reservations/{reservation_id}/extend-stay", response_model=ReservationResponse, tags=["Reservations"])
async def extend_stay(
    reservation_id: UUID,
    request: ExtendStayRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Move check-out later and charge the extra nights"""
    try:
        reservation = await service.extend_stay(current_user, reservation_id, request.new_check_out)
        return _reservation_to_response(reservation)
    except ValueError as e:
        raise _to_http_exception(e)

@app.post("/api/reservations/{reservation_id}/change-room", response_model=ReservationResponse, tags=["Reservations"])
async def change_room(
    reservation_id: UUID,
    request: ChangeRoomRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Move an in-house guest to another room"""
    try:
        reservation = await service.change_room(
            current_user, reservation_id, request.new_room_id, request.reason
        )
        return _reservation_to_response(reservation)
    except ValueError as e:
        raise _to_http_exception(e)

# ============================================================================
# ROOM SERVICE ENDPOINTS
# ============================================================================

@app.post("/api/room-service", response_model=RoomServiceOrderResponse, status_code=201, tags=["Room Service"])
async def place_room_service_order(
    request: PlaceOrderRequest,
    service: RoomServiceOrderService = Depends(get_room_service_order_service),
    current_user: User = Depends(get_current_active_user)
):
    """Place an order and charge it to the guest's bill"""
    try:
        order = await service.place_order(
            current_user, request.reservation_id, request.description,
            request.amount, request.quantity
        )
        return RoomServiceOrderResponse.model_validate(order)
    except ValueError as e:
        raise _to_http_exception(e)

@app.patch("/api/room-service/{order_id}/status", response_model=RoomServiceOrderResponse, tags=["Room Service"])
async def update_room_service_status(
    order_id: UUID,
    request: UpdateOrderStatusRequest,
    service: RoomServiceOrderService = Depends(get_room_service_order_service),
    current_user: User = Depends(get_current_active_user)
):
    """Advance, cancel or restore an order"""
    try:
        order = await service.update_order_status(current_user, order_id, request.status)
        return RoomServiceOrderResponse.model_validate(order)
    except ValueError as e:
        raise _to_http_exception(e)

@app.delete("/api/room-service/{order_id}", response_model=RoomServiceOrderResponse, tags=["Room Service"])
async def cancel_room_service_order(
    order_id: UUID,
    service: RoomServiceOrderService = Depends(get_room_service_order_service),
    current_user: User = Depends(get_current_active_user)
):
    """Cancel an order and reverse its charge"""
    try:
        order = await service.cancel_order(current_user, order_id)
        return RoomServiceOrderResponse.model_validate(order)
    except ValueError as e:
        raise _to_http_exception(e)

# ============================================================================
# HOUSEKEEPING ENDPOINTS
# ============================================================================

@app.get("/api/rooms", response_model=List[RoomResponse], tags=["Housekeeping"])
async def list_rooms(
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """List rooms with their current status"""
    return [RoomResponse.model_validate(r) for r in await service.list_rooms()]

@app.get("/api/rooms/available", response_model=List[RoomResponse], tags=["Housekeeping"])
async def find_available_rooms(
    check_in: datetime,
    check_out: datetime,
    room_type_id: Optional[UUID] = None,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """Rooms that are free for the whole stay"""
    try:
        rooms = await service.find_available_rooms(check_in, check_out, room_type_id)
    except ValueError as e:
        raise _to_http_exception(e)
    return [RoomResponse.model_validate(r) for r in rooms]

@app.post("/api/rooms/{room_id}/mark-clean", response_model=RoomResponse, tags=["Housekeeping"])
async def mark_room_clean(
    room_id: UUID,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """Return a cleaned room to the available pool"""
    try:
        return RoomResponse.model_validate(await service.mark_room_clean(current_user, room_id))
    except ValueError as e:
        raise _to_http_exception(e)

# ============================================================================
# SETTINGS & CRON ENDPOINTS
# ============================================================================

@app.get("/api/settings/hotel-policy", response_model=HotelPolicyRequest, tags=["Settings"])
async def get_hotel_policy(
    service: PolicyService = Depends(get_policy_service),
    current_user: User = Depends(get_current_active_user)
):
    """Current hotel policy"""
    return HotelPolicyRequest.model_validate(await service.get_or_create_policy())

@app.put("/api/settings/hotel-policy", response_model=HotelPolicyRequest, tags=["Settings"])
async def update_hotel_policy(
    request: HotelPolicyRequest,
    service: PolicyService = Depends(get_policy_service),
    current_user: User = Depends(get_current_active_user)
):
    """Replace the hotel policy (administrators only)"""
    try:
        saved = await service.update_policy(current_user, HotelPolicy(**request.model_dump()))
        return HotelPolicyRequest.model_validate(saved)
    except ValueError as e:
        raise _to_http_exception(e)

@app.post("/api/cron/reservation-sweep", response_model=SweepReportResponse, tags=["Cron"],
          dependencies=[Depends(require_cron_secret)])
async def run_reservation_sweep(job: ReservationSweepJob = Depends(get_sweep_job)):
    """Expire unpaid holds and mark no-shows"""
    try:
        report = await job.run()
        return SweepReportResponse.model_validate(report.model_dump())
    except ValueError as e:
        raise _to_http_exception(e)

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _reservation_to_response(reservation) -> ReservationResponse:
    """Convert Reservation entity to ReservationResponse"""
    return ReservationResponse.model_validate(reservation)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
