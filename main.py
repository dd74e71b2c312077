import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security import OAuth2PasswordRequestForm
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
import database
import services
from auth import Token, create_access_token, get_current_user, verify_password
from database import USERS, get_db
from errors import ServiceError
from schemas import (
    DonationRequest,
    DonationRequestUpdate,
    Payment,
    RequestStatus,
    StatusUpdate,
    User,
    UserStatus,
    UserUpdate,
)

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is None:
        database.connect()
    database.ensure_indexes(database.db)
    try:
        yield
    finally:
        database.close()


app = FastAPI(title="Blood Donation API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ===== Error handling =====
@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"message": "Database operation failed"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    parts = []
    for e in errors:
        # loc starts with "body"/"query"/"path"; the field name follows
        field = ".".join(str(p) for p in e["loc"][1:]) or str(e["loc"][0])
        parts.append(f"{field}: {e['msg']}")
    message = "; ".join(parts)
    return JSONResponse(
        status_code=422,
        content={"message": message, "detail": jsonable_encoder(errors)},
    )


@app.get("/", response_class=PlainTextResponse)
def read_root():
    return "Blood donation API running"


# ===== Auth =====
@app.post("/auth/login", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Database = Depends(get_db)):
    # OAuth2PasswordRequestForm names the field "username"; we use it as the email
    user = db[USERS].find_one({"email": form_data.username})
    if not user or not verify_password(form_data.password, user.get("password", "")):
        raise HTTPException(status_code=400, detail="Invalid credentials")
    if user.get("status") != "active":
        raise HTTPException(status_code=403, detail="User is blocked")
    token = create_access_token({"sub": user["email"], "role": user.get("role", "donor")})
    return {"access_token": token, "token_type": "bearer"}


@app.get("/auth/me", response_model=dict)
def read_users_me(current_user: dict = Depends(get_current_user)):
    return services.serialize_doc(current_user)


# ===== Users =====
@app.post("/users", response_model=dict)
def register(user: User, db: Database = Depends(get_db)):
    return services.register_user(db, user.model_dump(exclude_unset=True))


@app.get("/users", response_model=List[dict])
def list_users(status: Optional[UserStatus] = None, db: Database = Depends(get_db)):
    return services.list_users(db, status)


@app.get("/users/{email}", response_model=dict)
def get_profile(email: str, db: Database = Depends(get_db)):
    return services.get_user(db, email)


@app.patch("/users/{email}", response_model=dict)
def update_profile(email: str, patch: UserUpdate, db: Database = Depends(get_db)):
    return services.update_user(db, email, patch.model_dump(exclude_unset=True))


@app.patch("/users/block/{user_id}", response_model=dict)
def block_user(user_id: str, db: Database = Depends(get_db)):
    return services.set_user_status(db, user_id, "blocked")


@app.patch("/users/unblock/{user_id}", response_model=dict)
def unblock_user(user_id: str, db: Database = Depends(get_db)):
    return services.set_user_status(db, user_id, "active")


@app.patch("/users/make-volunteer/{user_id}", response_model=dict)
def make_volunteer(user_id: str, db: Database = Depends(get_db)):
    return services.set_user_role(db, user_id, "volunteer")


@app.patch("/users/make-admin/{user_id}", response_model=dict)
def make_admin(user_id: str, db: Database = Depends(get_db)):
    return services.set_user_role(db, user_id, "admin")


@app.get("/search-donors", response_model=List[dict])
def search_donors(
    blood_group: Optional[str] = Query(None, alias="bloodGroup"),
    district: Optional[str] = None,
    upazila: Optional[str] = None,
    db: Database = Depends(get_db),
):
    return services.search_donors(db, blood_group, district, upazila)


# ===== Admin =====
@app.get("/admin-stats", response_model=dict)
def admin_stats(db: Database = Depends(get_db)):
    return services.stats(db)


@app.get("/admin/donation-requests", response_model=List[dict])
def admin_donation_requests(status: Optional[str] = None, db: Database = Depends(get_db)):
    return services.admin_list_requests(db, status)


# ===== Donation requests =====
@app.post("/donation-requests", response_model=dict)
def create_donation_request(request: DonationRequest, db: Database = Depends(get_db)):
    return services.create_request(db, request.model_dump(exclude_unset=True))


@app.get("/donation-requests", response_model=dict)
def list_donation_requests(
    requester_email: Optional[str] = Query(None, alias="requesterEmail"),
    status: Optional[RequestStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Database = Depends(get_db),
):
    return services.list_requests(db, requester_email, status, page, limit)


# Declared before /donation-requests/{request_id} so "recent" is not taken for an id
@app.get("/donation-requests/recent", response_model=List[dict])
def recent_donation_requests(email: str, db: Database = Depends(get_db)):
    return services.recent_requests(db, email)


@app.get("/donation-requests/{request_id}", response_model=dict)
def get_donation_request(request_id: str, db: Database = Depends(get_db)):
    return services.get_request(db, request_id)


@app.patch("/donation-requests/status/{request_id}", response_model=dict)
def update_donation_status(request_id: str, update: StatusUpdate, db: Database = Depends(get_db)):
    return services.set_request_status(
        db, request_id, update.status, update.donorName, update.donorEmail
    )


@app.patch("/donation-requests/{request_id}", response_model=dict)
def update_donation_request(
    request_id: str, patch: DonationRequestUpdate, db: Database = Depends(get_db)
):
    return services.update_request(db, request_id, patch.model_dump(exclude_unset=True))


@app.delete("/donation-requests/{request_id}", response_model=dict)
def delete_donation_request(request_id: str, db: Database = Depends(get_db)):
    return services.delete_request(db, request_id)


# ===== Funding =====
@app.post("/payments", response_model=dict)
def create_payment(payment: Payment, db: Database = Depends(get_db)):
    return services.record_payment(db, payment.model_dump(exclude_unset=True))


@app.get("/payments", response_model=List[dict])
def list_payments(db: Database = Depends(get_db)):
    return services.list_payments(db)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
