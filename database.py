"""
MongoDB connection helpers.

`db` is None when no DATABASE_URL is configured; callers check for that and
report the database as unavailable instead of failing at import time.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import Settings, get_settings

logger = logging.getLogger(__name__)

COLLECTIONS = {
    "users": "user",
    "employees": "employees",
    "salary_records": "salaryrecords",
    "income_records": "incomerecords",
}


def connect(settings: Settings) -> Optional[Database]:
    if not settings.database_url or not settings.database_name:
        logger.warning("DATABASE_URL/DATABASE_NAME not set, running without a database")
        return None
    client: MongoClient = MongoClient(settings.database_url, tz_aware=True)
    logger.info("Connected MongoDB client for database '%s'", settings.database_name)
    return client[settings.database_name]


db: Optional[Database] = connect(get_settings())


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_document(data: Any) -> Dict[str, Any]:
    """Model or dict -> storable dict (dates become ISO strings)."""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", exclude={"id"}, exclude_none=True)
    return dict(data)


def from_document(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(doc)
    if "_id" in out:
        out["id"] = str(out.pop("_id"))
    return out


def create_document(collection_name: str, data: Any, database: Optional[Database] = None) -> str:
    database = database if database is not None else db
    if database is None:
        raise RuntimeError("Database not configured")
    doc = to_document(data)
    now = now_utc()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def ensure_indexes(database: Database) -> None:
    database[COLLECTIONS["users"]].create_index("email", unique=True)
    database[COLLECTIONS["employees"]].create_index("employee_id", unique=True)
    database[COLLECTIONS["employees"]].create_index([("created_at", DESCENDING)])
    database[COLLECTIONS["salary_records"]].create_index(
        [("employee_id", ASCENDING), ("year", DESCENDING), ("month", DESCENDING)]
    )
    database[COLLECTIONS["income_records"]].create_index(
        [("month", ASCENDING), ("year", ASCENDING)], unique=True
    )
    logger.info("Collection indexes ensured")
