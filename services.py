"""
Users, donation requests and admin reporting.

Every function takes the database handle first and works with plain dicts.
Records leave this module through ``serialize_doc`` so ids are strings and
password hashes never escape.
"""

import logging
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import get_password_hash
from database import DONATION_REQUESTS, PAYMENTS, USERS, get_documents, utcnow
from errors import BadRequestError, ForbiddenError, InvalidIdError, NotFoundError

logger = logging.getLogger(__name__)

USER_PROTECTED_FIELDS = ("_id", "id", "email", "role", "status")
REQUEST_PROTECTED_FIELDS = ("_id", "id", "status", "createdAt", "requesterEmail")
RECENT_LIMIT = 3


def serialize_doc(doc: Optional[dict]):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.get("_id")
    if isinstance(_id, ObjectId):
        doc["_id"] = str(_id)
    doc.pop("password", None)
    return doc


def parse_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise InvalidIdError(f"Invalid id: {value}")


def _insert_summary(result) -> dict:
    return {"acknowledged": result.acknowledged, "insertedId": str(result.inserted_id)}


def _update_summary(result) -> dict:
    return {
        "acknowledged": result.acknowledged,
        "matchedCount": result.matched_count,
        "modifiedCount": result.modified_count,
    }


def _strip(patch: dict, protected) -> dict:
    return {k: v for k, v in patch.items() if k not in protected}


# ===== Users =====

def register_user(db: Database, data: dict) -> dict:
    user = _strip(data, ("_id", "id"))
    user["role"] = "donor"
    user["status"] = "active"
    if user.get("password"):
        user["password"] = get_password_hash(user["password"])
    else:
        user.pop("password", None)
    user["createdAt"] = utcnow()
    try:
        result = db[USERS].insert_one(user)
    except DuplicateKeyError:
        return {"message": "user already exists"}
    logger.info("Registered user %s", user["email"])
    return _insert_summary(result)


def get_user(db: Database, email: str) -> dict:
    user = db[USERS].find_one({"email": email})
    if user is None:
        raise NotFoundError("User not found")
    return serialize_doc(user)


def update_user(db: Database, email: str, patch: dict) -> dict:
    changes = _strip(patch, USER_PROTECTED_FIELDS)
    if not changes:
        raise BadRequestError("No updatable fields supplied")
    if changes.get("password"):
        changes["password"] = get_password_hash(changes["password"])
    result = db[USERS].update_one({"email": email}, {"$set": changes})
    if result.matched_count == 0:
        raise NotFoundError("User not found")
    return _update_summary(result)


def list_users(db: Database, status: Optional[str] = None) -> list:
    filt = {"status": status} if status else {}
    return [serialize_doc(d) for d in get_documents(db, USERS, filt)]


def _set_user_field(db: Database, user_id: str, field: str, value: str) -> dict:
    result = db[USERS].update_one({"_id": parse_object_id(user_id)}, {"$set": {field: value}})
    if result.matched_count == 0:
        raise NotFoundError("User not found")
    logger.info("User %s %s set to %s", user_id, field, value)
    return _update_summary(result)


def set_user_status(db: Database, user_id: str, status: str) -> dict:
    return _set_user_field(db, user_id, "status", status)


def set_user_role(db: Database, user_id: str, role: str) -> dict:
    return _set_user_field(db, user_id, "role", role)


def search_donors(db: Database, blood_group: Optional[str] = None,
                  district: Optional[str] = None, upazila: Optional[str] = None) -> list:
    filt = {"status": "active", "role": "donor"}
    if blood_group:
        filt["bloodGroup"] = blood_group
    if district:
        filt["district"] = district
    if upazila:
        filt["upazila"] = upazila
    return [serialize_doc(d) for d in get_documents(db, USERS, filt)]


# ===== Donation requests =====

def create_request(db: Database, data: dict) -> dict:
    email = data.get("requesterEmail")
    requester = db[USERS].find_one({"email": email})
    if requester is None or requester.get("status") != "active":
        logger.warning("Refused donation request from %s", email)
        raise ForbiddenError("Blocked users cannot create requests")
    request = _strip(data, ("_id", "id"))
    request["status"] = "pending"
    request["createdAt"] = utcnow()
    result = db[DONATION_REQUESTS].insert_one(request)
    logger.info("Donation request %s created by %s", result.inserted_id, email)
    return _insert_summary(result)


def list_requests(db: Database, requester_email: Optional[str] = None,
                  status: Optional[str] = None, page: int = 1, limit: int = 10) -> dict:
    query = {}
    if requester_email:
        query["requesterEmail"] = requester_email
    if status:
        query["status"] = status
    requests = get_documents(db, DONATION_REQUESTS, query, limit=limit, skip=(page - 1) * limit)
    total = db[DONATION_REQUESTS].count_documents(query)
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "requests": [serialize_doc(r) for r in requests],
    }


def recent_requests(db: Database, email: str) -> list:
    docs = get_documents(db, DONATION_REQUESTS, {"requesterEmail": email}, limit=RECENT_LIMIT)
    return [serialize_doc(d) for d in docs]


def get_request(db: Database, request_id: str) -> dict:
    request = db[DONATION_REQUESTS].find_one({"_id": parse_object_id(request_id)})
    if request is None:
        raise NotFoundError("Donation request not found")
    return serialize_doc(request)


def update_request(db: Database, request_id: str, patch: dict) -> dict:
    oid = parse_object_id(request_id)
    changes = _strip(patch, REQUEST_PROTECTED_FIELDS)
    if not changes:
        raise BadRequestError("No updatable fields supplied")
    result = db[DONATION_REQUESTS].update_one({"_id": oid}, {"$set": changes})
    if result.matched_count == 0:
        raise NotFoundError("Donation request not found")
    return _update_summary(result)


def delete_request(db: Database, request_id: str) -> dict:
    result = db[DONATION_REQUESTS].delete_one({"_id": parse_object_id(request_id)})
    if result.deleted_count == 0:
        raise NotFoundError("Donation request not found")
    logger.info("Donation request %s deleted", request_id)
    return {"acknowledged": result.acknowledged, "deletedCount": result.deleted_count}


def set_request_status(db: Database, request_id: str, status: str,
                       donor_name: Optional[str] = None, donor_email: Optional[str] = None) -> dict:
    """Move a request to ``status``.

    Going to ``inprogress`` records who is donating; callers supply both donor
    fields for that move. Any state may follow any other, the lifecycle is not
    enforced as a graph.
    """
    oid = parse_object_id(request_id)
    changes = {"status": status}
    if status == "inprogress":
        changes["donorName"] = donor_name
        changes["donorEmail"] = donor_email
    result = db[DONATION_REQUESTS].update_one({"_id": oid}, {"$set": changes})
    if result.matched_count == 0:
        raise NotFoundError("Donation request not found")
    logger.info("Donation request %s moved to %s", request_id, status)
    return _update_summary(result)


def admin_list_requests(db: Database, status: Optional[str] = None) -> list:
    filt = {"status": status} if status and status != "all" else {}
    return [serialize_doc(d) for d in get_documents(db, DONATION_REQUESTS, filt)]


# ===== Funding & reporting =====

def record_payment(db: Database, data: dict) -> dict:
    payment = _strip(data, ("_id", "id"))
    if not payment.get("amount") or payment["amount"] <= 0:
        raise BadRequestError("Payment amount must be positive")
    payment["createdAt"] = utcnow()
    result = db[PAYMENTS].insert_one(payment)
    logger.info("Payment of %s recorded for %s", payment["amount"], payment.get("email"))
    return _insert_summary(result)


def list_payments(db: Database) -> list:
    return [serialize_doc(d) for d in get_documents(db, PAYMENTS)]


def stats(db: Database) -> dict:
    funding = list(db[PAYMENTS].aggregate([
        {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
    ]))
    return {
        "totalUsers": db[USERS].count_documents({}),
        "totalRequests": db[DONATION_REQUESTS].count_documents({}),
        "totalFunding": funding[0]["total"] if funding else 0,
    }
