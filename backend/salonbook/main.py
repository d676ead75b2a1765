import logging

from fastapi import FastAPI
from redis.exceptions import RedisError

from .database import engine
from .models.generated import Base
from .redis_client import redis_client
from .routers import appointments, slots, working_hours

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Salon Booking API")

app.include_router(working_hours.router)
app.include_router(slots.router)
app.include_router(appointments.router)


@app.get("/health")
def health():
    try:
        return {"redis": redis_client.ping()}
    except RedisError as e:
        logger.error(f"Redis ping failed: {e}")
        return {"redis": False}
