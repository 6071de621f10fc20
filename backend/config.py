"""
Configuration et utilitaires partagés
"""

import os
import hashlib
from datetime import datetime, timezone, timedelta
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'leadflow')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

print(f"[CONFIG] Using database: {DB_NAME}")

# Push notifications (FCM legacy HTTP endpoint). Empty key = push disabled.
FCM_ENDPOINT = os.environ.get('FCM_ENDPOINT', 'https://fcm.googleapis.com/fcm/send')
FCM_SERVER_KEY = os.environ.get('FCM_SERVER_KEY', '')
PUSH_TIMEOUT_SECONDS = float(os.environ.get('PUSH_TIMEOUT_SECONDS', '5'))

CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 500


# ==================== HELPERS ====================

def hash_password(password: str) -> str:
    """Hash un mot de passe avec SHA256"""
    return hashlib.sha256(password.encode()).hexdigest()


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return now_utc().isoformat()


def to_iso(dt: datetime) -> str:
    """ISO UTC string, comparable lexicographically with now_iso() values."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def parse_iso(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ==================== IST <-> UTC ====================
#
# Clients send milliseconds "in IST": the epoch value already shifted by
# +05:30. UTC = value - offset. Responses go back with + offset.

IST_OFFSET_MS = 19800000
IST_OFFSET = timedelta(milliseconds=IST_OFFSET_MS)
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def ist_millis_to_utc(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=value - IST_OFFSET_MS)


def ist_millis_to_utc_iso(value: Optional[int]) -> Optional[str]:
    if value is None:
        return None
    return to_iso(ist_millis_to_utc(value))


def utc_to_ist_millis(dt) -> Optional[int]:
    """Inverse of ist_millis_to_utc. Accepts a datetime or an ISO string."""
    if dt is None:
        return None
    if isinstance(dt, str):
        dt = parse_iso(dt)
    elif dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = dt - EPOCH
    return (delta.days * 86400 + delta.seconds) * 1000 + delta.microseconds // 1000 + IST_OFFSET_MS


def ist_wall_clock(dt: datetime) -> datetime:
    """Naive IST wall-clock datetime for a UTC instant."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (dt.astimezone(timezone.utc) + IST_OFFSET).replace(tzinfo=None)


def ist_day_start_utc(dt: datetime) -> datetime:
    """UTC instant of the IST midnight that starts dt's IST day."""
    wall = ist_wall_clock(dt)
    midnight = wall.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.replace(tzinfo=timezone.utc) - IST_OFFSET


def month_key(dt: Optional[datetime] = None) -> str:
    """First day of dt's UTC month at midnight, as ISO."""
    dt = (dt or now_utc()).astimezone(timezone.utc)
    return datetime(dt.year, dt.month, 1, tzinfo=timezone.utc).isoformat()


def month_key_from_ist_millis(value: Optional[int]) -> str:
    """Month key for the IST calendar month a client timestamp falls in."""
    if value is None:
        return month_key()
    wall = EPOCH + timedelta(milliseconds=value)
    return datetime(wall.year, wall.month, 1, tzinfo=timezone.utc).isoformat()
