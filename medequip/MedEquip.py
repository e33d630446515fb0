import logging
import os
import threading
import time
from datetime import datetime

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

load_dotenv()

from medequip.db.base import Base
from medequip.db.deps import get_db
from medequip.db.session import engine_store
from medequip.models.store_models import AuditLog
from medequip.schemas.auth import AuthLoginRequest, AuthSignupRequest
from medequip.schemas.bookings import CreatePurchaseDto, CreateRentalRequestDto, RentalRequestDecision, RentalStatusUpdate
from medequip.schemas.machines import MachineUpsert
from medequip.services.authorization_service import ADMIN_ROLE, AuthorizationError, Capabilities
from medequip.services.booking_service import (
    RENTAL_STATES,
    REQUEST_STATES,
    BookingNotFoundError,
    BookingStateError,
    BookingValidationError,
    confirm_rental_request,
    create_rental_request,
    decide_rental_request,
    get_rental_request,
    list_rental_requests,
    list_rentals,
    serialize_rental,
    serialize_rental_request,
    update_rental_status,
)
from medequip.services.catalog_service import ALL, FEATURED_LIMIT, CatalogFilter, CatalogView, featured_machines
from medequip.services.inventory_service import (
    InventoryValidationError,
    MachineNotFoundError,
    create_machine,
    delete_machine,
    update_machine,
)
from medequip.services.machine_store_service import MachineIdRetiredError, get_machine_store
from medequip.services.navigation_service import resolve_navigation
from medequip.services.pricing_service import calculate_rental_price
from medequip.services.purchase_service import create_purchase, get_pending_purchase, pay_purchase, serialize_purchase
from medequip.services.role_resolver import SessionRoleResolver
from medequip.services.route_guards import ADMIN_LOGIN_PATH, CLINIC_LOGIN_PATH
from medequip.services.user_access_service import (
    AuthError,
    create_session,
    resolve_role,
    serialize_user,
    sign_up,
    verify_password,
)


app = FastAPI(title="MedEquip")


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


_CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://127.0.0.1:5173,http://localhost:5173",
)
_CORS_ALLOW_CREDENTIALS = str(os.environ.get("CORS_ALLOW_CREDENTIALS", "true")).strip().lower() in {"1", "true", "yes", "on"}
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(
    SessionMiddleware,
    secret_key=(os.environ.get("SESSION_SIGNING_SECRET") or "").strip(),
    session_cookie="medequip_session",
    same_site="lax",
    https_only=False,
)

AUTH_ATTEMPT_WINDOW_SECONDS = int(os.environ.get("AUTH_ATTEMPT_WINDOW_SECONDS") or "300")
AUTH_MAX_ATTEMPTS_PER_IP = int(os.environ.get("AUTH_MAX_ATTEMPTS_PER_IP") or "50")
AUTH_MAX_ATTEMPTS_PER_ACCOUNT = int(os.environ.get("AUTH_MAX_ATTEMPTS_PER_ACCOUNT") or "8")
AUTH_LOCKOUT_SECONDS = int(os.environ.get("AUTH_LOCKOUT_SECONDS") or "900")
AUTH_LOGGER = logging.getLogger("medequip.auth")
STORE_LOGGER = logging.getLogger("medequip.store")
_AUTH_GUARD_LOCK = threading.Lock()
_AUTH_ATTEMPTS_BY_IP: dict[str, list[float]] = {}
_AUTH_ATTEMPTS_BY_ACCOUNT: dict[str, list[float]] = {}
_AUTH_LOCKOUT_UNTIL_BY_ACCOUNT: dict[str, float] = {}


@app.on_event("startup")
def startup_db():
    Base.metadata.create_all(bind=engine_store)


@app.exception_handler(AuthorizationError)
def _authorization_error_handler(request: Request, exc: AuthorizationError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(BookingValidationError)
@app.exception_handler(InventoryValidationError)
@app.exception_handler(BookingStateError)
@app.exception_handler(MachineIdRetiredError)
def _validation_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(BookingNotFoundError)
@app.exception_handler(MachineNotFoundError)
def _not_found_error_handler(request: Request, exc: LookupError):
    return JSONResponse(status_code=404, content={"detail": str(exc.args[0]) if exc.args else "Not found"})


@app.exception_handler(SQLAlchemyError)
def _store_error_handler(request: Request, exc: SQLAlchemyError):
    STORE_LOGGER.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


def log_audit(db: Session, entity_type: str, entity_id, action: str, details: str | None = None, user_id: str | None = None) -> None:
    db.add(
        AuditLog(
            EntityType=entity_type,
            EntityID=str(entity_id),
            Action=action,
            Details=details,
            UserID=user_id,
            CreatedAt=datetime.now(),
        )
    )


def _get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        candidate = forwarded.split(",")[0].strip()
        if candidate:
            return candidate
    return request.client.host if request.client and request.client.host else "unknown"


def _prune_attempts(attempts: list[float], now_ts: float) -> list[float]:
    cutoff = now_ts - max(AUTH_ATTEMPT_WINDOW_SECONDS, 1)
    return [ts for ts in attempts if ts >= cutoff]


def _check_login_guard(client_ip: str, account_key: str) -> int | None:
    now_ts = time.time()
    with _AUTH_GUARD_LOCK:
        lockout_until = _AUTH_LOCKOUT_UNTIL_BY_ACCOUNT.get(account_key)
        if lockout_until and lockout_until > now_ts:
            return max(1, int(lockout_until - now_ts))
        if lockout_until and lockout_until <= now_ts:
            _AUTH_LOCKOUT_UNTIL_BY_ACCOUNT.pop(account_key, None)

        ip_attempts = _prune_attempts(_AUTH_ATTEMPTS_BY_IP.get(client_ip, []), now_ts)
        account_attempts = _prune_attempts(_AUTH_ATTEMPTS_BY_ACCOUNT.get(account_key, []), now_ts)
        _AUTH_ATTEMPTS_BY_IP[client_ip] = ip_attempts
        _AUTH_ATTEMPTS_BY_ACCOUNT[account_key] = account_attempts

        if len(ip_attempts) >= max(AUTH_MAX_ATTEMPTS_PER_IP, 1):
            oldest = ip_attempts[0]
            return max(1, int((oldest + AUTH_ATTEMPT_WINDOW_SECONDS) - now_ts))
        if len(account_attempts) >= max(AUTH_MAX_ATTEMPTS_PER_ACCOUNT, 1):
            _AUTH_LOCKOUT_UNTIL_BY_ACCOUNT[account_key] = now_ts + max(AUTH_LOCKOUT_SECONDS, 1)
            return max(AUTH_LOCKOUT_SECONDS, 1)
    return None


def _record_login_failure(client_ip: str, account_key: str) -> None:
    now_ts = time.time()
    with _AUTH_GUARD_LOCK:
        ip_attempts = _prune_attempts(_AUTH_ATTEMPTS_BY_IP.get(client_ip, []), now_ts)
        account_attempts = _prune_attempts(_AUTH_ATTEMPTS_BY_ACCOUNT.get(account_key, []), now_ts)
        ip_attempts.append(now_ts)
        account_attempts.append(now_ts)
        _AUTH_ATTEMPTS_BY_IP[client_ip] = ip_attempts
        _AUTH_ATTEMPTS_BY_ACCOUNT[account_key] = account_attempts
        if len(account_attempts) >= max(AUTH_MAX_ATTEMPTS_PER_ACCOUNT, 1):
            _AUTH_LOCKOUT_UNTIL_BY_ACCOUNT[account_key] = now_ts + max(AUTH_LOCKOUT_SECONDS, 1)


def _record_login_success(account_key: str) -> None:
    with _AUTH_GUARD_LOCK:
        _AUTH_ATTEMPTS_BY_ACCOUNT.pop(account_key, None)
        _AUTH_LOCKOUT_UNTIL_BY_ACCOUNT.pop(account_key, None)


def _audit_auth_event(db: Session, *, action: str, details: str, user_id: str | None = None) -> None:
    try:
        log_audit(db, "Auth", user_id or "-", action, details, user_id=user_id)
        db.commit()
    except SQLAlchemyError:
        AUTH_LOGGER.exception("Could not write auth audit event action=%s", action)
        db.rollback()


def _invalid_login_error() -> HTTPException:
    return HTTPException(status_code=401, detail="Invalid login credentials.")


def _session_token(request: Request, header_token: str | None) -> str | None:
    if header_token:
        return header_token
    token = request.session.get("token")
    return token if isinstance(token, str) and token else None


def _resolve_caller(request: Request, db: Session, session_token: str | None) -> SessionRoleResolver:
    return SessionRoleResolver(db, _session_token(request, session_token)).resolve()


def _require_session_or_401(request: Request, db: Session, session_token: str | None, login_path: str = CLINIC_LOGIN_PATH) -> SessionRoleResolver:
    resolver = _resolve_caller(request, db, session_token)
    if not resolver.user:
        raise HTTPException(status_code=401, detail="Not logged in.", headers={"X-Redirect-To": login_path})
    return resolver


def _require_capability_or_403(
    request: Request,
    db: Session,
    session_token: str | None,
    right: str,
    login_path: str = CLINIC_LOGIN_PATH,
) -> Capabilities:
    resolver = _require_session_or_401(request, db, session_token, login_path)
    capabilities = resolver.capabilities()
    if not capabilities.can(right):
        raise HTTPException(status_code=403, detail=f"Role '{resolver.role or 'none'}' may not {right}.")
    return capabilities


def _login_response(request: Request, user, role: str | None) -> dict:
    token = create_session({"userID": user.UserID, "email": user.Email})
    request.session["token"] = token
    return {
        "sessionToken": token,
        "user": serialize_user(user),
        "role": role,
        "redirectTo": "/admin" if role == ADMIN_ROLE else "/",
    }


def _require_machine(store, machine_id: str):
    machine = store.get_machine(machine_id)
    if machine is None:
        raise HTTPException(status_code=404, detail="Machine not found")
    return machine


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok"}
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc


@app.post("/api/auth/signup")
def auth_signup(payload: dict, request: Request, db: Session = Depends(get_db)):
    client_ip = _get_client_ip(request)
    try:
        parsed = AuthSignupRequest.model_validate(payload)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid signup request.")
    try:
        user = sign_up(db, parsed.email, parsed.password, parsed.fullName)
    except AuthError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    role = resolve_role(db, user.UserID)
    _audit_auth_event(db, action="SignUp", details=f"ip={client_ip} email={user.Email}", user_id=user.UserID)
    AUTH_LOGGER.info("Signup success ip=%s user_id=%s", client_ip, user.UserID)
    return _login_response(request, user, role)


@app.post("/api/auth/login")
def auth_login(payload: dict, request: Request, db: Session = Depends(get_db)):
    client_ip = _get_client_ip(request)
    try:
        parsed = AuthLoginRequest.model_validate(payload)
    except ValidationError:
        _audit_auth_event(db, action="LoginRejected", details=f"ip={client_ip} reason=invalid_payload")
        raise HTTPException(status_code=400, detail="Invalid login request.")

    email = str(parsed.email or "").strip().lower()
    password = str(parsed.password or "")
    if not email or not password:
        raise HTTPException(status_code=400, detail="Please fill in all required fields")

    account_key = f"user:{email}"
    retry_after = _check_login_guard(client_ip, account_key)
    if retry_after is not None:
        _audit_auth_event(db, action="LoginThrottled", details=f"ip={client_ip} key={account_key} retry_after={retry_after}")
        AUTH_LOGGER.warning("Login throttled ip=%s key=%s retry_after=%s", client_ip, account_key, retry_after)
        raise HTTPException(
            status_code=429,
            detail="Too many login attempts. Please try again later.",
            headers={"Retry-After": str(retry_after)},
        )

    user = verify_password(db, email, password)
    if user is None:
        _record_login_failure(client_ip, account_key)
        _audit_auth_event(db, action="LoginFailed", details=f"ip={client_ip} key={account_key} reason=invalid_credentials")
        AUTH_LOGGER.warning("Login failed ip=%s key=%s reason=invalid_credentials", client_ip, account_key)
        raise _invalid_login_error()

    role = resolve_role(db, user.UserID)
    if parsed.portal is not None and role != parsed.portal:
        _audit_auth_event(db, action="LoginRejected", details=f"ip={client_ip} key={account_key} reason=portal_role_mismatch portal={parsed.portal}", user_id=user.UserID)
        AUTH_LOGGER.warning("Login rejected ip=%s key=%s portal=%s role=%s", client_ip, account_key, parsed.portal, role)
        request.session.clear()
        raise HTTPException(status_code=403, detail=f"This account is not registered for the {parsed.portal} portal.")

    _record_login_success(account_key)
    _audit_auth_event(db, action="LoginSuccess", details=f"ip={client_ip} key={account_key} role={role}", user_id=user.UserID)
    AUTH_LOGGER.info("Login success ip=%s key=%s user_id=%s", client_ip, account_key, user.UserID)
    return _login_response(request, user, role)


@app.post("/api/auth/logout")
def auth_logout(
    request: Request,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    resolver = SessionRoleResolver(db, _session_token(request, x_session_token))
    resolver.sign_out()
    request.session.clear()
    return {"ok": True}


@app.get("/api/auth/me")
def auth_me(
    request: Request,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    resolver = _require_session_or_401(request, db, x_session_token)
    payload = resolver.snapshot()
    payload["capabilities"] = resolver.capabilities().as_dict()
    return payload


@app.get("/api/navigation/resolve")
def navigation_resolve(
    request: Request,
    path: str = Query("/"),
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    resolver = _resolve_caller(request, db, x_session_token)
    return resolve_navigation(path, resolver)


@app.get("/api/machines")
def get_machines(
    request: Request,
    search: str = Query(""),
    category: str = Query(ALL),
    condition: str = Query(ALL),
    min_price: float = Query(0, alias="minPrice", ge=0),
    max_price: float | None = Query(None, alias="maxPrice", ge=0),
    availability: str = Query(ALL, pattern="^(all|available|unavailable)$"),
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_capability_or_403(request, db, x_session_token, "browseCatalog")
    view = CatalogView(get_machine_store(db).list_machines())
    filters = CatalogFilter(
        search=search.strip(),
        category=category,
        condition=condition,
        min_price=min_price,
        max_price=max_price,
        availability=availability,
    )
    return [machine.model_dump() for machine in view.filtered(filters)]


@app.get("/api/machines/facets")
def get_machine_facets(
    request: Request,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_capability_or_403(request, db, x_session_token, "browseCatalog")
    return CatalogView(get_machine_store(db).list_machines()).facets()


@app.get("/api/machines/featured")
def get_featured_machines(
    request: Request,
    limit: int = Query(FEATURED_LIMIT, ge=1, le=24),
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_capability_or_403(request, db, x_session_token, "browseCatalog")
    return [machine.model_dump() for machine in featured_machines(get_machine_store(db).list_machines(), limit)]


@app.get("/api/machines/{machine_id}")
def get_machine_item(
    request: Request,
    machine_id: str,
    action: str | None = Query(None, pattern="^(buy|rent)$"),
    duration: str | None = Query(None),
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_capability_or_403(request, db, x_session_token, "browseCatalog")
    machine = _require_machine(get_machine_store(db), machine_id)
    payload = machine.model_dump()
    payload["openFlow"] = action if machine.availability else None
    if duration is not None:
        payload["quotedRentalPrice"] = calculate_rental_price(duration, machine.rentalPricing)
    return payload


@app.post("/api/machines")
def create_machine_item(
    request: Request,
    payload: MachineUpsert,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    capabilities = _require_capability_or_403(request, db, x_session_token, "manageInventory", ADMIN_LOGIN_PATH)
    created = create_machine(get_machine_store(db), capabilities, payload)
    log_audit(db, "Machine", created.id, "CreateMachine", created.machineName, user_id=capabilities.user_id)
    db.commit()
    return created.model_dump()


@app.put("/api/machines/{machine_id}")
def update_machine_item(
    request: Request,
    machine_id: str,
    payload: MachineUpsert,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    capabilities = _require_capability_or_403(request, db, x_session_token, "manageInventory", ADMIN_LOGIN_PATH)
    updated = update_machine(get_machine_store(db), capabilities, machine_id, payload)
    log_audit(db, "Machine", machine_id, "UpdateMachine", updated.machineName, user_id=capabilities.user_id)
    db.commit()
    return updated.model_dump()


@app.delete("/api/machines/{machine_id}")
def delete_machine_item(
    request: Request,
    machine_id: str,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    capabilities = _require_capability_or_403(request, db, x_session_token, "manageInventory", ADMIN_LOGIN_PATH)
    delete_machine(get_machine_store(db), capabilities, machine_id)
    log_audit(db, "Machine", machine_id, "DeleteMachine", None, user_id=capabilities.user_id)
    db.commit()
    return {"message": "Deleted"}


@app.post("/api/rental-requests")
def create_rental_request_item(
    request: Request,
    payload: CreateRentalRequestDto,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    capabilities = _require_capability_or_403(request, db, x_session_token, "requestRental")
    machine = _require_machine(get_machine_store(db), payload.machineID)
    rental_request = create_rental_request(
        db,
        capabilities,
        machine,
        user_name=payload.userName,
        phone=payload.phone,
        location=payload.location,
        rental_duration=payload.rentalDuration,
    )
    log_audit(db, "RentalRequest", rental_request.RequestID, "CreateRentalRequest", f"duration={rental_request.RentalDuration}", user_id=capabilities.user_id)
    db.commit()
    return serialize_rental_request(rental_request)


@app.get("/api/rental-requests")
def get_rental_requests(
    request: Request,
    status: str | None = Query(None),
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    resolver = _require_session_or_401(request, db, x_session_token)
    if status is not None and status not in REQUEST_STATES:
        raise HTTPException(status_code=400, detail=f"status must be one of: {', '.join(sorted(REQUEST_STATES))}.")
    rows = list_rental_requests(db, resolver.capabilities(), status)
    return [serialize_rental_request(row) for row in rows]


@app.get("/api/rental-requests/{request_id}")
def get_rental_request_item(
    request: Request,
    request_id: int,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    resolver = _require_session_or_401(request, db, x_session_token)
    return serialize_rental_request(get_rental_request(db, resolver.capabilities(), request_id))


@app.post("/api/rental-requests/{request_id}/decide")
def decide_rental_request_item(
    request: Request,
    request_id: int,
    payload: RentalRequestDecision,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    resolver = _require_session_or_401(request, db, x_session_token, ADMIN_LOGIN_PATH)
    capabilities = resolver.capabilities()
    rental_request = decide_rental_request(db, capabilities, request_id, payload.decision, payload.reason)
    log_audit(db, "RentalRequest", request_id, "DecideRentalRequest", f"{rental_request.AdminStatus}: {rental_request.DecisionReason or ''}".strip(), user_id=capabilities.user_id)
    db.commit()
    return serialize_rental_request(rental_request)


@app.post("/api/rental-requests/{request_id}/confirm")
def confirm_rental_request_item(
    request: Request,
    request_id: int,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    resolver = _require_session_or_401(request, db, x_session_token)
    capabilities = resolver.capabilities()
    rental = confirm_rental_request(db, capabilities, request_id)
    log_audit(db, "Rental", rental.RentalID, "ConfirmRental", f"request={request_id}", user_id=capabilities.user_id)
    db.commit()
    return serialize_rental(rental)


@app.get("/api/rentals")
def get_rentals(
    request: Request,
    status: str | None = Query(None),
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    resolver = _require_session_or_401(request, db, x_session_token)
    if status is not None and status not in RENTAL_STATES:
        raise HTTPException(status_code=400, detail=f"status must be one of: {', '.join(sorted(RENTAL_STATES))}.")
    return [serialize_rental(rental) for rental in list_rentals(db, resolver.capabilities(), status)]


@app.post("/api/rentals/{rental_id}/status")
def update_rental_status_item(
    request: Request,
    rental_id: int,
    payload: RentalStatusUpdate,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    resolver = _require_session_or_401(request, db, x_session_token, ADMIN_LOGIN_PATH)
    capabilities = resolver.capabilities()
    rental = update_rental_status(db, capabilities, rental_id, payload.status)
    log_audit(db, "Rental", rental_id, "UpdateRentalStatus", rental.Status, user_id=capabilities.user_id)
    db.commit()
    return serialize_rental(rental)


@app.post("/api/purchases")
def create_purchase_item(
    request: Request,
    payload: CreatePurchaseDto,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    capabilities = _require_capability_or_403(request, db, x_session_token, "purchase")
    machine = _require_machine(get_machine_store(db), payload.machineID)
    purchase = create_purchase(db, capabilities, machine)
    log_audit(db, "Purchase", purchase.PurchaseID, "CreatePurchase", f"machine={machine.id}", user_id=capabilities.user_id)
    db.commit()
    return serialize_purchase(purchase)


@app.get("/api/purchases/{purchase_id}")
def get_purchase_item(
    request: Request,
    purchase_id: int,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    resolver = _require_session_or_401(request, db, x_session_token)
    return serialize_purchase(get_pending_purchase(db, resolver.capabilities(), purchase_id))


@app.post("/api/purchases/{purchase_id}/pay")
def pay_purchase_item(
    request: Request,
    purchase_id: int,
    db: Session = Depends(get_db),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    resolver = _require_session_or_401(request, db, x_session_token)
    capabilities = resolver.capabilities()
    purchase = pay_purchase(db, capabilities, purchase_id)
    log_audit(db, "Purchase", purchase_id, "PayPurchase", None, user_id=capabilities.user_id)
    db.commit()
    return serialize_purchase(purchase)
