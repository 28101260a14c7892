# giftlist/main.py
# Главная точка входа FastAPI для сервиса вишлистов.
#  • Все роутеры под общим префиксом /api
#  • Ошибки валидации запроса -> 400 validation_error (вместо 422 по умолчанию)
#  • Фоновый прогон истечения броней включается флагом CLAIM_SWEEP_ENABLED=1

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from giftlist.db import engine  # инициализация БД/пула соединений  # noqa: F401
from giftlist.utils.errors import err

from giftlist.routers.webhooks import router as webhooks_router
from giftlist.routers.users import router as users_router
from giftlist.routers.items import router as items_router
from giftlist.routers.groups import router as groups_router
from giftlist.routers.group_members import router as group_members_router
from giftlist.routers.group_invitations import router as group_invitations_router
from giftlist.routers.invitations import router as invitations_router
from giftlist.routers.claims import router as claims_router
from giftlist.routers.shared_items import router as shared_items_router
from giftlist.routers.notifications import router as notifications_router

from giftlist.jobs.claim_expiration import start_claim_expiration_loop

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)

_DEFAULT_ORIGINS = "http://localhost:3000,http://localhost:4321,http://127.0.0.1:3000,http://127.0.0.1:4321"
CORS_ALLOW_ORIGINS = [
    o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", _DEFAULT_ORIGINS).split(",") if o.strip()
]

app = FastAPI(
    title="Giftlist Backend",
    description="Вишлисты, группы получателей, брони подарков со слепым пятном владельца.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"detail": err("validation_error", "Request validation failed", details=details)},
    )


# --- Подключение роутеров ---
app.include_router(webhooks_router,          prefix="/api", tags=["Вебхуки"])
app.include_router(users_router,             prefix="/api", tags=["Пользователи"])
app.include_router(items_router,             prefix="/api", tags=["Позиции"])
app.include_router(groups_router,            prefix="/api", tags=["Группы"])
app.include_router(group_members_router,     prefix="/api", tags=["Участники групп"])
app.include_router(group_invitations_router, prefix="/api", tags=["Приглашения группы"])
app.include_router(invitations_router,       prefix="/api", tags=["Приглашения"])
app.include_router(claims_router,            prefix="/api", tags=["Брони"])
app.include_router(shared_items_router,      prefix="/api", tags=["Расшаренные позиции"])
app.include_router(notifications_router,     prefix="/api", tags=["Уведомления"])


@app.get("/")
def root():
    """Простой healthcheck."""
    return {"message": "Giftlist backend работает!", "docs": "/docs"}


@app.on_event("startup")
def _startup_jobs():
    if os.getenv("CLAIM_SWEEP_ENABLED") == "1":
        start_claim_expiration_loop()
        log.info("claim-expiration loop started")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("giftlist.main:app", host="0.0.0.0", port=8000, reload=False)
