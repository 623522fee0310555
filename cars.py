import logging
import re
from typing import Any, Dict, List, Optional

from auth import Actor
from database import create_document, get_documents, to_object_id, utcnow
from errors import CarNotFound, ForbiddenError
from schemas import Car, CreateCarRequest, UpdateCarRequest

logger = logging.getLogger(__name__)

COLLECTION = "car"


def get_car(db, car_id: str) -> Dict[str, Any]:
    car = db[COLLECTION].find_one({"_id": to_object_id(car_id, CarNotFound)})
    if not car:
        raise CarNotFound()
    return car


def get_owned_car(db, owner: Actor, car_id: str, action: str = "access") -> Dict[str, Any]:
    car = get_car(db, car_id)
    if car["owner_id"] != owner.id:
        raise ForbiddenError(f"Not authorized to {action} this car")
    return car


def add_car(db, owner: Actor, payload: CreateCarRequest) -> Dict[str, Any]:
    car = Car(owner_id=owner.id, is_available=True, **payload.model_dump())
    car_id = create_document(db, COLLECTION, car)
    logger.info(f"Car listed by owner {owner.id}", extra={"car_id": car_id})
    return get_car(db, car_id)


def update_car(db, owner: Actor, car_id: str, payload: UpdateCarRequest) -> Dict[str, Any]:
    car = get_owned_car(db, owner, car_id, "update")
    changes = payload.model_dump(exclude_none=True)
    if changes:
        changes["updated_at"] = utcnow()
        db[COLLECTION].update_one({"_id": car["_id"]}, {"$set": changes})
    return get_car(db, car_id)


def delete_car(db, owner: Actor, car_id: str) -> None:
    car = get_owned_car(db, owner, car_id, "delete")
    db[COLLECTION].delete_one({"_id": car["_id"]})
    logger.info("Car deleted", extra={"car_id": car_id})


def toggle_car_availability(db, owner: Actor, car_id: str) -> Dict[str, Any]:
    car = get_owned_car(db, owner, car_id, "update")
    db[COLLECTION].update_one(
        {"_id": car["_id"]},
        {"$set": {"is_available": not car.get("is_available", False), "updated_at": utcnow()}},
    )
    return get_car(db, car_id)


def list_owner_cars(db, owner_id: str) -> List[Dict[str, Any]]:
    return get_documents(db, COLLECTION, {"owner_id": owner_id})


def search_cars(db, location: Optional[str] = None, category: Optional[str] = None) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {"is_available": True}
    if location:
        query["location"] = {"$regex": re.escape(location), "$options": "i"}
    if category:
        query["category"] = {"$regex": re.escape(category), "$options": "i"}
    return get_documents(db, COLLECTION, query)


def rental_records_for_owner(db, owner_id: str) -> List[Dict[str, Any]]:
    car_ids = [str(c["_id"]) for c in db[COLLECTION].find({"owner_id": owner_id}, {"_id": 1})]
    return get_documents(db, "rentalrecord", {"car_id": {"$in": car_ids}}, newest_first=True)
