import os
import re
import math
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from fastapi import FastAPI, HTTPException, Query, Depends, Body, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from database import get_db, get_optional_db, create_document, get_documents, ensure_indexes, to_object_id, now_utc
from schemas import (
    UserIn,
    TestimonialIn,
    ClassIn,
    TrainerIn,
    TrainerApplicationIn,
    RejectIn,
    RemoveSlotIndexIn,
    RemoveSlotValueIn,
    VoteIn,
    ReviewIn,
    SubscribeIn,
    PaymentIn,
    APPROVED,
    PENDING,
    REJECTED,
)
import trainer_workflow

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is None:
        logger.warning("DATABASE_URL not set, data routes will answer 500")
    else:
        try:
            ensure_indexes(database.db)
            logger.info("Connected to MongoDB database %s", database.DATABASE_NAME)
        except PyMongoError:
            logger.exception("MongoDB index bootstrap failed")
    yield


app = FastAPI(title="Fitness Tracker API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Error envelope ----------

@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
    return JSONResponse(status_code=400, content={"error": "Invalid request", "fields": fields})


@app.exception_handler(PyMongoError)
async def store_error(request: Request, exc: PyMongoError):
    logger.error("Database failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.error("Unhandled failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ---------- Utility helpers ----------

def serialize_doc(doc: Optional[Dict[str, Any]]):
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["_id"] = str(d["_id"])
    # Convert datetimes to isoformat strings
    for k, v in list(d.items()):
        if isinstance(v, datetime):
            if v.tzinfo is None:
                v = v.replace(tzinfo=timezone.utc)
            d[k] = v.astimezone(timezone.utc).isoformat()
    return d


def serialize_all(docs) -> List[Dict[str, Any]]:
    return [serialize_doc(d) for d in docs]


def missing(*values: Any) -> bool:
    return any(v is None or (isinstance(v, str) and not v.strip()) for v in values)


def find_by_id(db: Database, collection: str, doc_id: str, what: str, extra: Optional[Dict[str, Any]] = None):
    oid = to_object_id(doc_id)
    doc = db[collection].find_one({"_id": oid, **(extra or {})}) if oid else None
    if not doc:
        raise HTTPException(status_code=404, detail=f"{what} not found")
    return doc


# ---------- Basic routes ----------

@app.get("/", response_class=PlainTextResponse)
def read_root():
    return "Fitness Tracker API is running..."


@app.get("/test")
def test_database(db: Optional[Database] = Depends(get_optional_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    if db is None:
        return response

    response["database"] = "✅ Available"
    response["database_name"] = db.name
    try:
        collections = db.list_collection_names()
        response["collections"] = collections[:10]
        response["connection_status"] = "Connected"
        response["database"] = "✅ Connected & Working"
    except PyMongoError:
        logger.exception("Database diagnostic failed")
        response["database"] = "⚠️  Connected but Error"
    return response


# ---------- Users ----------

@app.get("/users")
def list_users(db: Database = Depends(get_db)):
    return serialize_all(db["users"].find())


@app.post("/users", status_code=201)
def register_user(payload: UserIn, db: Database = Depends(get_db)):
    if missing(payload.email):
        raise HTTPException(status_code=400, detail="Email is required")

    existing = db["users"].find_one({"email": payload.email})
    if existing is None:
        data = payload.model_dump(exclude_none=True)
        data["role"] = "member"
        try:
            inserted_id = create_document(db, "users", data)
            return {"message": "User registered successfully", "insertedId": inserted_id}
        except DuplicateKeyError:
            # lost a registration race; fall through to the existing user
            existing = db["users"].find_one({"email": payload.email})

    if not existing.get("role"):
        db["users"].update_one({"email": payload.email}, {"$set": {"role": "member"}})
        existing["role"] = "member"
    return JSONResponse(status_code=200, content={"message": "User already exists", "user": serialize_doc(existing)})


@app.get("/users/{email}")
def get_user(email: str, db: Database = Depends(get_db)):
    user = db["users"].find_one({"email": email})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return serialize_doc(user)


# ---------- Testimonials ----------

@app.post("/testimonials", status_code=201)
def add_testimonial(payload: TestimonialIn, db: Database = Depends(get_db)):
    if missing(payload.name, payload.review):
        raise HTTPException(status_code=400, detail="Name and review are required")
    inserted_id = create_document(db, "testimonials", payload.model_dump(exclude_none=True))
    return {"message": "Testimonial added successfully", "id": inserted_id}


@app.get("/testimonials")
def list_testimonials(db: Database = Depends(get_db)):
    return serialize_all(get_documents(db, "testimonials"))


# ---------- Classes ----------

@app.post("/classes", status_code=201)
def add_class(payload: ClassIn, db: Database = Depends(get_db)):
    if missing(payload.name, payload.image, payload.details):
        raise HTTPException(status_code=400, detail="Class name, image, and details are required")
    data = payload.model_dump(exclude_none=True)
    data["totalBookings"] = 0
    inserted_id = create_document(db, "classes", data)
    return {"message": "Class added successfully", "insertedId": inserted_id}


@app.get("/classes")
def list_classes(
    page: int = Query(1, ge=1),
    limit: int = Query(6, ge=1, le=100),
    search: Optional[str] = Query(None, description="Case-insensitive match on class name"),
    db: Database = Depends(get_db),
):
    filt: Dict[str, Any] = {}
    if search:
        filt["name"] = {"$regex": re.escape(search), "$options": "i"}

    total_classes = db["classes"].count_documents(filt)
    cursor = db["classes"].find(filt).sort("createdAt", -1).skip((page - 1) * limit).limit(limit)
    return {
        "data": serialize_all(cursor),
        "currentPage": page,
        "totalPages": math.ceil(total_classes / limit),
        "totalClasses": total_classes,
    }


@app.get("/classes/featured")
def featured_classes(db: Database = Depends(get_db)):
    cursor = db["classes"].find().sort([("totalBookings", -1), ("createdAt", -1)]).limit(6)
    return serialize_all(cursor)


@app.get("/classes/{class_id}")
def get_class(class_id: str, db: Database = Depends(get_db)):
    return serialize_doc(find_by_id(db, "classes", class_id, "Class"))


# ---------- Trainers ----------

@app.post("/trainers", status_code=201)
def add_trainer(payload: TrainerIn, db: Database = Depends(get_db)):
    if missing(payload.name, payload.image, payload.experience):
        raise HTTPException(status_code=400, detail="Name, image, and experience are required")
    data = payload.model_dump(exclude_none=True)
    data["status"] = APPROVED
    data["slotsVersion"] = 0
    if not isinstance(data.get("availableSlots"), list):
        data["availableSlots"] = []
    inserted_id = create_document(db, "trainers", data)
    return {"message": "Trainer added successfully", "insertedId": inserted_id}


@app.get("/trainers")
def list_trainers(db: Database = Depends(get_db)):
    return serialize_all(get_documents(db, "trainers", {"status": APPROVED}))


@app.post("/trainers/apply", status_code=201)
def apply_trainer(payload: TrainerApplicationIn, db: Database = Depends(get_db)):
    inserted_id = trainer_workflow.submit_application(db, payload)
    return {"success": True, "insertedId": inserted_id}


@app.get("/trainers/applications")
def applications_by_email(email: Optional[str] = None, db: Database = Depends(get_db)):
    if missing(email):
        raise HTTPException(status_code=400, detail="Email is required")
    return serialize_all(get_documents(db, "trainers", {"email": email}))


@app.get("/trainers/applications/pending")
def pending_applications(db: Database = Depends(get_db)):
    return serialize_all(get_documents(db, "trainers", {"status": PENDING}))


@app.get("/trainers/applications/status/filter")
def open_applications(db: Database = Depends(get_db)):
    return serialize_all(get_documents(db, "trainers", {"status": {"$in": [PENDING, REJECTED]}}))


@app.get("/trainers/applications/{application_id}")
def get_application(application_id: str, db: Database = Depends(get_db)):
    return serialize_doc(find_by_id(db, "trainers", application_id, "Applicant", {"status": PENDING}))


@app.patch("/trainers/applications/{application_id}/confirm")
def confirm_application(application_id: str, db: Database = Depends(get_db)):
    trainer = trainer_workflow.approve_application(db, application_id)
    return {"success": True, "message": "Trainer approved and added", "trainer": serialize_doc(trainer)}


@app.patch("/trainers/applications/{application_id}/reject")
def reject_application(application_id: str, payload: Optional[RejectIn] = None, db: Database = Depends(get_db)):
    feedback = payload.feedback if payload else None
    trainer_workflow.reject_application(db, application_id, feedback)
    return {"success": True, "message": "Application rejected with feedback"}


@app.get("/trainers/email/{email}")
@app.get("/trainers/by-email/{email}")
def trainer_by_email(email: str, db: Database = Depends(get_db)):
    trainer = db["trainers"].find_one({"email": email, "status": APPROVED})
    if not trainer:
        raise HTTPException(status_code=404, detail="Trainer not found")
    return serialize_doc(trainer)


@app.get("/trainers/{trainer_id}")
def get_trainer(trainer_id: str, db: Database = Depends(get_db)):
    return serialize_doc(find_by_id(db, "trainers", trainer_id, "Trainer"))


@app.patch("/trainers/{trainer_id}/remove-trainer")
def remove_trainer(trainer_id: str, db: Database = Depends(get_db)):
    user = trainer_workflow.demote_trainer(db, trainer_id)
    return {
        "success": True,
        "message": "Trainer removed and converted to member successfully",
        "user": serialize_doc(user),
    }


# ---------- Slots ----------

@app.patch("/trainers/{trainer_id}/add-slot")
@app.post("/trainers/{trainer_id}/slots")
def add_slot(trainer_id: str, slot: Dict[str, Any] = Body(...), db: Database = Depends(get_db)):
    if not slot:
        raise HTTPException(status_code=400, detail="Slot details are required")
    trainer_workflow.add_slot(db, trainer_id, slot)
    return {"success": True, "message": "Slot added successfully"}


@app.patch("/trainers/{trainer_id}/remove-slot")
def remove_slot_by_index(trainer_id: str, payload: RemoveSlotIndexIn, db: Database = Depends(get_db)):
    remaining = trainer_workflow.remove_slot_at(db, trainer_id, payload.slotIndex)
    return {"success": True, "message": "Slot removed successfully", "availableSlots": remaining}


@app.delete("/trainers/{trainer_id}/slots")
def remove_slot_by_value(trainer_id: str, payload: RemoveSlotValueIn, db: Database = Depends(get_db)):
    trainer_workflow.pull_slot(db, trainer_id, payload.slot)
    return {"success": True}


# ---------- Forum ----------

@app.get("/forum")
def list_forum_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(6, ge=1, le=100),
    db: Database = Depends(get_db),
):
    total_posts = db["forum"].count_documents({})
    cursor = db["forum"].find().sort("createdAt", -1).skip((page - 1) * limit).limit(limit)
    return {
        "posts": serialize_all(cursor),
        "totalPages": math.ceil(total_posts / limit),
        "currentPage": page,
        "totalPosts": total_posts,
    }


@app.post("/forum", status_code=201)
def add_forum_post(post: Dict[str, Any] = Body(...), db: Database = Depends(get_db)):
    if not post:
        raise HTTPException(status_code=400, detail="Post content is required")
    data = {**post, "upvotes": 0, "downvotes": 0}
    inserted_id = create_document(db, "forum", data)
    return {"success": True, "message": "Forum post added!", "insertedId": inserted_id}


@app.patch("/forum/{post_id}/vote")
def vote_forum_post(post_id: str, payload: VoteIn, db: Database = Depends(get_db)):
    if payload.voteType not in ("up", "down"):
        raise HTTPException(status_code=400, detail="voteType must be 'up' or 'down'")
    field = "upvotes" if payload.voteType == "up" else "downvotes"
    oid = to_object_id(post_id)
    post = db["forum"].find_one_and_update(
        {"_id": oid}, {"$inc": {field: 1}}, return_document=ReturnDocument.AFTER
    ) if oid else None
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return {"success": True, "upvotes": post.get("upvotes", 0), "downvotes": post.get("downvotes", 0)}


# ---------- Reviews ----------

@app.post("/reviews", status_code=201)
def add_review(payload: ReviewIn, db: Database = Depends(get_db)):
    if missing(payload.trainerId):
        raise HTTPException(status_code=400, detail="Trainer id is required")
    inserted_id = create_document(db, "reviews", payload.model_dump(exclude_none=True))
    return {"success": True, "message": "Review submitted successfully", "insertedId": inserted_id}


@app.get("/reviews")
def list_reviews(db: Database = Depends(get_db)):
    return serialize_all(get_documents(db, "reviews"))


@app.get("/reviews/trainer/{trainer_id}")
def reviews_for_trainer(trainer_id: str, db: Database = Depends(get_db)):
    return serialize_all(get_documents(db, "reviews", {"trainerId": trainer_id}))


# ---------- Newsletter ----------

@app.post("/newsletter/subscribe", status_code=201)
def subscribe(payload: SubscribeIn, db: Database = Depends(get_db)):
    if missing(payload.name, payload.email):
        raise HTTPException(status_code=400, detail="Name and email are required")
    if db["subscriber"].find_one({"email": payload.email}):
        raise HTTPException(status_code=409, detail="You are already subscribed")
    try:
        create_document(db, "subscriber", {"name": payload.name, "email": payload.email})
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="You are already subscribed")
    return {"success": True, "message": "Subscription successful"}


@app.get("/newsletter/subscribers")
def list_subscribers(db: Database = Depends(get_db)):
    return serialize_all(get_documents(db, "subscriber"))


# ---------- Payments & Bookings ----------

@app.post("/payments", status_code=201)
def create_payment(payload: PaymentIn, db: Database = Depends(get_db)):
    if missing(payload.userEmail, payload.trainerId):
        raise HTTPException(status_code=400, detail="Invalid booking data")
    data = payload.model_dump(exclude_none=True)
    # no gateway: every payment is recorded as successful
    data["status"] = "success"
    # booking time is server-set even when the body carries a createdAt
    data["createdAt"] = now_utc()
    inserted_id = create_document(db, "bookings", data)
    logger.info("Booking %s recorded for %s with trainer %s", inserted_id, payload.userEmail, payload.trainerId)
    return {"message": "Payment & booking saved successfully", "id": inserted_id}


@app.get("/bookings/trainer/{trainer_id}")
def bookings_for_trainer(trainer_id: str, db: Database = Depends(get_db)):
    return serialize_all(get_documents(db, "bookings", {"trainerId": trainer_id}))


@app.get("/bookings/user/{email}")
def bookings_for_user(email: str, db: Database = Depends(get_db)):
    bookings = get_documents(db, "bookings", {"userEmail": email, "status": "success"})
    if not bookings:
        return []

    trainer_ids = {oid for oid in (to_object_id(b.get("trainerId")) for b in bookings) if oid}
    trainers_map = {
        str(t["_id"]): serialize_doc(t)
        for t in db["trainers"].find({"_id": {"$in": list(trainer_ids)}})
    } if trainer_ids else {}

    merged = []
    for booking in bookings:
        item = serialize_doc(booking)
        item["trainerDetails"] = trainers_map.get(booking.get("trainerId"))
        merged.append(item)
    return merged


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
