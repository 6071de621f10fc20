"""
LeadFlow CRM - Notifications

Stores an in-app notification, then tries a push through FCM.
Push is best effort: any failure is logged, never raised to the caller.
"""

import logging
import uuid
from typing import Dict, List, Optional

import httpx
from pymongo.errors import PyMongoError

import config
from config import db, now_iso, utc_to_ist_millis
from models.user import RequesterContext

logger = logging.getLogger("notifications")


async def send_push_notification(user_id: str, title: str, body: str) -> bool:
    """Returns True when FCM accepted the message."""
    if not config.FCM_SERVER_KEY:
        logger.debug(f"[PUSH] disabled, skipping user={user_id}")
        return False

    user = await db.users.find_one({"id": user_id}, {"_id": 0, "fcm_token": 1})
    token = (user or {}).get("fcm_token")
    if not token:
        logger.info(f"[PUSH] user {user_id} does not have token")
        return False

    payload = {"to": token, "data": {"title": title, "body": body}}
    try:
        async with httpx.AsyncClient(timeout=config.PUSH_TIMEOUT_SECONDS) as http_client:
            response = await http_client.post(
                config.FCM_ENDPOINT,
                json=payload,
                headers={
                    "Authorization": f"key={config.FCM_SERVER_KEY}",
                    "Content-Type": "application/json",
                },
            )
        if response.status_code != 200:
            logger.warning(f"[PUSH] user={user_id} status={response.status_code} body={response.text[:200]}")
            return False
        return True
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(f"[PUSH] user={user_id} error={e}")
        return False


async def notify_user(user_id: str, title: str, description: str, lead_id: Optional[str] = None) -> Dict:
    """Create the notification row, then push."""
    notification = {
        "id": str(uuid.uuid4()),
        "assigned": user_id,
        "lead": lead_id,
        "title": title,
        "description": description,
        "created_at": now_iso(),
    }
    await db.notifications.insert_one(notification)
    notification.pop("_id", None)
    logger.info(f"[NOTIFY] user={user_id} lead={lead_id} title={title!r}")

    await send_push_notification(user_id, "You have new lead", title)
    return notification


async def notify_user_safely(user_id: str, title: str, description: str, lead_id: Optional[str] = None) -> Optional[Dict]:
    """notify_user() for side effects of another operation: never raises storage errors."""
    try:
        return await notify_user(user_id, title, description, lead_id)
    except PyMongoError as e:
        logger.error(f"[NOTIFY] failed for user={user_id} lead={lead_id}: {e}")
        return None


async def list_notifications(ctx: RequesterContext, skip: int = 0, limit: int = 20) -> List[Dict]:
    rows = await db.notifications.find(
        {"assigned": ctx.user_id},
        {"_id": 0, "id": 1, "title": 1, "description": 1, "lead": 1, "created_at": 1}
    ).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    for row in rows:
        row["created_at"] = utc_to_ist_millis(row["created_at"])
    return rows
