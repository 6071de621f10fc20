"""
LeadFlow CRM - API Backend

Démarre avec:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
import logging

from config import CORS_ORIGINS, client
from services.errors import CrmError

# Configuration logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("leadflow")

# Créer l'app
app = FastAPI(
    title="LeadFlow CRM",
    description="Suivi des leads, tâches, objectifs et activité par branche",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== ERREURS ====================

@app.exception_handler(CrmError)
async def crm_error_handler(request: Request, exc: CrmError):
    if exc.status_code >= 500:
        logger.error(f"[ERROR] {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    # drop the "body" / "query" location prefix
    path = ".".join(str(p) for p in first.get("loc", ())[1:])
    message = first.get("msg", "invalid input")
    content = {"detail": f"{path}: {message}" if path else message}
    if path:
        content["field"] = path
    return JSONResponse(status_code=400, content=content)


@app.exception_handler(PyMongoError)
async def storage_error_handler(request: Request, exc: PyMongoError):
    logger.error(f"[ERROR] storage failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal storage error"})


# ==================== IMPORT DES ROUTES ====================

from routes import activities, auth, leads, leaves, notifications, statics, targets, tasks, users

# Routes avec préfixe /api
app.include_router(auth.router, prefix="/api")
app.include_router(leads.router, prefix="/api")
app.include_router(tasks.router, prefix="/api")
app.include_router(activities.router, prefix="/api")
app.include_router(targets.router, prefix="/api")
app.include_router(statics.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(leaves.router, prefix="/api")
app.include_router(notifications.router, prefix="/api")


# ==================== ROUTE RACINE ====================

@app.get("/")
async def root():
    return {
        "name": "LeadFlow CRM API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


# ==================== STARTUP ====================

@app.on_event("startup")
async def startup():
    logger.info("LeadFlow CRM démarré")

    from config import db

    await db.users.create_index("id", unique=True)
    await db.users.create_index("username", unique=True)
    await db.users.create_index("manager")
    await db.sessions.create_index("token")
    await db.customers.create_index("phone", unique=True)
    await db.leads.create_index("id", unique=True)
    await db.leads.create_index("handled_by")
    await db.leads.create_index("manager")
    await db.leads.create_index("created_at")
    await db.tasks.create_index("id", unique=True)
    await db.tasks.create_index("due")
    # une seule tâche ouverte par lead
    await db.tasks.create_index(
        "lead",
        name="one_open_task_per_lead",
        unique=True,
        partialFilterExpression={"is_completed": False},
    )
    await db.activities.create_index("lead")
    await db.activities.create_index("created_at")
    await db.targets.create_index([("assigned", 1), ("month", 1)], unique=True)
    await db.notifications.create_index("assigned")
    await db.leaves.create_index("requester")

    logger.info("Index MongoDB créés")


@app.on_event("shutdown")
async def shutdown_db_client():
    client.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
