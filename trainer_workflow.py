"""
Trainer lifecycle for the Fitness Tracker API.

Applications and active trainers share the "trainers" collection and are
told apart by `status`:

    pending -> approved          (confirm, in place)
    pending -> rejected          (reject, in place, re-appliable)
    approved -> removing -> gone (demote, trainer becomes a member user)

Slot lists live on the trainer document. Every slot write bumps
`slotsVersion` so index based removal can detect a concurrent change.
"""
import logging
import math
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from pymongo import ReturnDocument
from pymongo.database import Database

from database import now_utc, to_object_id
from schemas import (
    APPROVED,
    DEFAULT_SOCIALS,
    PENDING,
    REJECTED,
    REMOVING,
    TrainerApplicationIn,
)

logger = logging.getLogger(__name__)

TRAINERS = "trainers"
USERS = "users"
DEFAULT_FEEDBACK = "No feedback provided"


def to_number(value: Any) -> Optional[float]:
    """Coerce form input to a number; None when it is missing or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = value
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
    if isinstance(number, float):
        if math.isnan(number) or math.isinf(number):
            return None
        if number.is_integer():
            return int(number)
    return number


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _trainer_id(trainer_id: str, what: str = "Trainer"):
    oid = to_object_id(trainer_id)
    if oid is None:
        raise HTTPException(status_code=404, detail=f"{what} not found")
    return oid


def build_application(payload: TrainerApplicationIn) -> Dict[str, Any]:
    if not payload.name or not payload.email:
        raise HTTPException(status_code=400, detail="Name and email are required")
    socials = payload.socials if isinstance(payload.socials, dict) else dict(DEFAULT_SOCIALS)
    return {
        "name": payload.name,
        "email": payload.email,
        "age": to_number(payload.age),
        "image": payload.image,
        "experience": to_number(payload.experience),
        "details": payload.details or "",
        "expertise": _as_list(payload.expertise),
        "availableDays": _as_list(payload.availableDays),
        "availableSlots": _as_list(payload.availableSlots),
        "socials": socials,
        "status": PENDING,
        "slotsVersion": 0,
        "createdAt": now_utc(),
    }


def submit_application(db: Database, payload: TrainerApplicationIn) -> str:
    doc = build_application(payload)
    result = db[TRAINERS].insert_one(doc)
    logger.info("Trainer application %s submitted by %s", result.inserted_id, doc["email"])
    return str(result.inserted_id)


def approve_application(db: Database, application_id: str) -> Dict[str, Any]:
    oid = _trainer_id(application_id, "Applicant")
    now = now_utc()
    trainer = db[TRAINERS].find_one_and_update(
        {"_id": oid, "status": PENDING},
        {"$set": {"status": APPROVED, "approvedAt": now, "updatedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    if trainer is None:
        raise HTTPException(status_code=404, detail="Applicant not found")
    logger.info("Trainer application %s approved", application_id)
    return trainer


def reject_application(db: Database, application_id: str, feedback: Optional[str] = None) -> None:
    oid = _trainer_id(application_id, "Applicant")
    result = db[TRAINERS].update_one(
        {"_id": oid, "status": {"$in": [PENDING, REJECTED]}},
        {"$set": {"status": REJECTED, "feedback": feedback or DEFAULT_FEEDBACK, "updatedAt": now_utc()}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Applicant not found or already approved")
    logger.info("Trainer application %s rejected", application_id)


def demote_trainer(db: Database, trainer_id: str) -> Dict[str, Any]:
    """Turn a trainer back into a member user.

    The trainer is marked `removing` before the user write and deleted
    only after it, so a retry after any failure finishes the move.
    """
    oid = _trainer_id(trainer_id)
    trainer = db[TRAINERS].find_one_and_update(
        {"_id": oid},
        {"$set": {"status": REMOVING, "updatedAt": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if trainer is None:
        raise HTTPException(status_code=404, detail="Trainer not found")

    fields = {"name": trainer.get("name"), "image": trainer.get("image") or "", "role": "member"}
    email = trainer.get("email")
    if email:
        user = db[USERS].find_one_and_update(
            {"email": email},
            {"$set": fields, "$setOnInsert": {"email": email, "createdAt": now_utc()}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    else:
        user = {**fields, "createdAt": now_utc()}
        db[USERS].insert_one(user)

    db[TRAINERS].delete_one({"_id": oid})
    logger.info("Trainer %s removed and converted to member %s", trainer_id, email)
    return user


def add_slot(db: Database, trainer_id: str, slot: Dict[str, Any]) -> None:
    oid = _trainer_id(trainer_id)
    result = db[TRAINERS].update_one(
        {"_id": oid},
        {"$push": {"availableSlots": slot}, "$inc": {"slotsVersion": 1}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Trainer not found")


def remove_slot_at(db: Database, trainer_id: str, slot_index: int) -> List[Any]:
    oid = _trainer_id(trainer_id)
    trainer = db[TRAINERS].find_one({"_id": oid}, {"availableSlots": 1, "slotsVersion": 1})
    if trainer is None:
        raise HTTPException(status_code=404, detail="Trainer not found")

    slots = _as_list(trainer.get("availableSlots"))
    if slot_index >= len(slots):
        raise HTTPException(status_code=400, detail="Slot index out of range")
    remaining = slots[:slot_index] + slots[slot_index + 1:]

    # a missing version only matches documents that still lack it
    result = db[TRAINERS].update_one(
        {"_id": oid, "slotsVersion": trainer.get("slotsVersion")},
        {"$set": {"availableSlots": remaining}, "$inc": {"slotsVersion": 1}},
    )
    if result.matched_count == 0:
        logger.warning("Slot list of trainer %s changed during removal", trainer_id)
        raise HTTPException(status_code=409, detail="Slots changed, reload and retry")
    return remaining


def pull_slot(db: Database, trainer_id: str, slot: Any) -> None:
    oid = _trainer_id(trainer_id)
    result = db[TRAINERS].update_one(
        {"_id": oid},
        {"$pull": {"availableSlots": slot}, "$inc": {"slotsVersion": 1}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Trainer not found")
