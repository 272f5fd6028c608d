# app/main.py

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn
from dotenv import load_dotenv
from contextlib import asynccontextmanager

from app.utils.log import Log
from app.utils.database import init_db, AsyncSessionLocal
from app.utils.errors import AppError
from app.middleware.db_middleware import DBSessionMiddleware

import os
import multiprocessing

# --- environment ---
load_dotenv()

# --- sync logger for early startup ---
boot_log = Log()
if os.environ.get("RUN_MAIN") == "true" or multiprocessing.current_process().name == "MainProcess":
    boot_log.log_info_sync(target="startup", message="main.py imported")

# ────────────── Lifespan ──────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    boot_log.log_info_sync(target="startup", message="lifespan: startup")

    admin = await init_db()
    boot_log.log_info_sync(target="startup", message="Database initialised", data={"seeded_admin": admin is not None})

    app.state.session_factory = AsyncSessionLocal
    app.state.log = Log()
    await app.state.log.log_info(target="startup", message="Async Log ready")

    yield

    await app.state.log.log_info(target="shutdown", message="Application stopping")
    await app.state.log.shutdown()
    boot_log.log_info_sync(target="shutdown", message="Log closed")

# ────────────── FastAPI application ──────────────
app = FastAPI(title="Storefront Core API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# request.state.db
app.add_middleware(DBSessionMiddleware)

# ────────────── Error bodies: {"error": "..."} ──────────────
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else err.get("msg", ""))
    return JSONResponse(status_code=400, content={"error": "; ".join(messages) or "Invalid request"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    log = getattr(request.app.state, "log", None)
    if log:
        await log.log_error("unexpected", f"{type(exc).__name__}: {exc}", {"path": request.url.path})
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/")
def read_root():
    return {"status": "ok"}

# ────────────── Routers ──────────────
from app.routes import auth, order, rewards, referral, pincode

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(order.router, prefix="/order", tags=["order"])
app.include_router(rewards.router, prefix="/rewards", tags=["rewards"])
app.include_router(referral.router, prefix="/referral", tags=["referral"])
app.include_router(pincode.router, prefix="/pincode", tags=["pincode"])

# ────────────── uvicorn ──────────────
if __name__ == "__main__":
    boot_log.log_info_sync(target="startup", message="uvicorn.run")
    uvicorn.run(
        "app.main:app",
        host="127.0.0.1",
        port=8000,
        log_level="info",
        reload=True
    )
