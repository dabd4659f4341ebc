import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.errors import FinancerError
from .api.credit_card_router import router as credit_card_router
from .api.recurring_router import router as recurring_router


logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


app = FastAPI(title=settings.APP_NAME, version="0.1.0")


@app.on_event("startup")
def on_startup() -> None:
    configure_logging()
    logger.info("%s started (env=%s)", settings.APP_NAME, settings.ENV)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FinancerError)
async def handle_financer_error(request: Request, exc: FinancerError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(recurring_router, prefix="/api")
app.include_router(credit_card_router, prefix="/api")
