"""
LeadFlow CRM - Customers

Un customer par téléphone, réutilisé par tous les leads du même numéro.
"""

import logging
import uuid
from typing import Dict, Optional

from pymongo import ReturnDocument

from config import db, ist_millis_to_utc_iso, now_iso

logger = logging.getLogger("customers")


def normalize_phone(phone: str) -> str:
    """Digits only, a leading + kept."""
    phone = (phone or "").strip()
    digits = "".join(filter(str.isdigit, phone))
    return f"+{digits}" if phone.startswith("+") else digits


async def find_or_create_customer(phone: str, data: Dict) -> Dict:
    """
    Atomic find-or-create keyed on phone. Existing customers are returned
    untouched; `data` only seeds a new document.
    """
    phone = normalize_phone(phone)
    seed = {
        "id": str(uuid.uuid4()),
        "name": (data.get("name") or "").strip(),
        "email": data.get("email"),
        "address": data.get("address", ""),
        "dob": ist_millis_to_utc_iso(data.get("dob")),
        "created_at": now_iso(),
    }
    customer = await db.customers.find_one_and_update(
        {"phone": phone},
        {"$setOnInsert": seed},
        upsert=True,
        return_document=ReturnDocument.AFTER,
        projection={"_id": 0},
    )
    if customer["id"] == seed["id"]:
        logger.info(f"[CUSTOMER] created {customer['id']} phone={phone}")
    return customer


async def find_customer(customer_id: Optional[str]) -> Optional[Dict]:
    if not customer_id:
        return None
    return await db.customers.find_one({"id": customer_id}, {"_id": 0})
