"""Shared builders for an in-memory CarConnect database."""

from datetime import datetime

import mongomock
from bson import ObjectId

from auth import Actor
from database import create_document, ensure_indexes
from schemas import Car, Driver

OWNER = Actor(id="owner-1", role="owner", name="Omar Owner")
RENTER = Actor(id="renter-1", role="renter", name="Riya Renter")
OTHER_RENTER = Actor(id="renter-2", role="renter", name="Ravi Renter")


def make_db():
    db = mongomock.MongoClient().carconnect_test
    ensure_indexes(db)
    return db


def insert_car(db, **overrides):
    fields = dict(
        owner_id=OWNER.id,
        make="Maruti",
        model="Swift",
        year=2021,
        price_per_day=1000,
        is_available=True,
        location="Delhi",
        category="Hatchback",
    )
    fields.update(overrides)
    car_id = create_document(db, "car", Car(**fields))
    return db["car"].find_one({"_id": ObjectId(car_id)})


def insert_driver(db, user_id, location="Delhi", is_available=True, **overrides):
    fields = dict(
        user_id=user_id,
        location=location,
        is_available=is_available,
        license_number=f"DL-{user_id}",
        license_expiry=datetime(2030, 1, 1),
    )
    fields.update(overrides)
    create_document(db, "driver", Driver(**fields))
    return db["driver"].find_one({"user_id": user_id})


def driver_actor(user_id, name=None):
    return Actor(id=user_id, role="driver", name=name or f"Driver {user_id}")
