# wellgroups/main.py
# Главная точка входа FastAPI для групп и группового чата.
#  • Роутеры под /api
#  • GroupError -> {"detail": {"code", "message"}} с HTTP-статусом ошибки
#  • CORS и уровень логирования: из переменных окружения

from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dotenv import load_dotenv
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

from wellgroups.db import engine  # noqa: E402,F401  инициализация БД/пула соединений
from wellgroups.services.errors import GroupError  # noqa: E402

from wellgroups.routers.auth import router as auth_router  # noqa: E402
from wellgroups.routers.eligibility import router as eligibility_router  # noqa: E402
from wellgroups.routers.groups import router as groups_router  # noqa: E402
from wellgroups.routers.messages import router as messages_router  # noqa: E402
from wellgroups.routers.events import router as events_router  # noqa: E402

log = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"

app = FastAPI(
    title="Wellness Groups Backend",
    description="Группы поддержки: допуск, членство по коду, спонсорство, групповой чат.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GroupError)
async def group_error_handler(request: Request, exc: GroupError):
    if exc.status_code >= 500:
        log.error(f"{request.method} {request.url.path} -> {exc.code}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


# --- Подключение роутеров ---
app.include_router(auth_router,        prefix="/api/auth",   tags=["Авторизация"])
app.include_router(eligibility_router, prefix="/api")
app.include_router(groups_router,      prefix="/api/groups", tags=["Группы"])
app.include_router(messages_router,    prefix="/api")
app.include_router(events_router,      prefix="/api")


@app.get("/")
def root():
    """Простой healthcheck."""
    return {"message": "Wellness groups backend работает!", "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("wellgroups.main:app", host="0.0.0.0", port=8000, reload=False)
