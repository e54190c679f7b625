import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.api.routes import buyers, car_models, employees, inventory, order_items, orders
from src.core.config import LOG_LEVEL
from src.core.database import Base, engine

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title="Cars Trade API",
    description="Order management backend for a car dealership",
    version="1.0.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(orders.router, prefix="/api/v1/orders", tags=["orders"])
app.include_router(order_items.router, prefix="/api/v1/orders", tags=["order items"])
app.include_router(inventory.router, prefix="/api/v1/inventory", tags=["inventory"])
app.include_router(car_models.router, prefix="/api/v1/car-models", tags=["car models"])
app.include_router(buyers.router, prefix="/api/v1/buyers", tags=["buyers"])
app.include_router(employees.router, prefix="/api/v1/employees", tags=["employees"])

@app.get("/")
async def root():
    return {"message": "Cars Trade API"}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
