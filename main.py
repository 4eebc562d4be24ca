import logging

from fastapi import FastAPI

from config import get_settings
from db import create_db_and_tables
from errors import ServiceError, service_error_handler, unexpected_error_handler
from routers import auth, donations, matching, recipients, users

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="MediDonate")

app.add_exception_handler(ServiceError, service_error_handler)
app.add_exception_handler(Exception, unexpected_error_handler)


@app.on_event("startup")
def on_startup() -> None:
    create_db_and_tables()
    logger.info("MediDonate started")


@app.get("/")
def read_root():
    return {"name": "MediDonate", "status": "ok"}


app.include_router(auth.router)
app.include_router(users.router, prefix="/users")
app.include_router(donations.router, prefix="/donations")
app.include_router(recipients.router, prefix="/recipients")
app.include_router(matching.router, prefix="/matching")
