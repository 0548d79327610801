from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import logging

from storefront.config import get_settings
from storefront.errors import StorefrontError
from storefront.realtime.broadcaster import RoomBroadcaster, get_broadcaster
from storefront.routers import orders
from storefront.routers import cart
from storefront.routers import admin_dashboard
from storefront.routers import admin_notifications
from storefront.routers import admin_returns
from storefront.routers import admin_users
from storefront.routers import realtime

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger("storefront")

app = FastAPI(title="Storefront Orders API")


def create_tables():
    # Ensure all DB tables exist after all models are imported
    from storefront.models.user import Base, engine  # Base/engine single source
    import storefront.models.product  # register Product model
    import storefront.models.cart  # register Cart/CartItem models
    import storefront.models.order  # register Order/OrderItem models
    import storefront.models.notification  # register Notification model
    Base.metadata.create_all(bind=engine)


@app.on_event("startup")
def on_startup():
    create_tables()


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "kind": exc.kind, "detail": exc.message},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "kind": "internal_error", "detail": "Internal server error"},
    )


# CORS configuration for storefront and admin frontends
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(orders.admin_router, prefix="/api/admin/orders", tags=["admin-orders"])
app.include_router(cart.router, prefix="/api/cart", tags=["cart"])
app.include_router(admin_returns.router, prefix="/api/admin/returns", tags=["admin-returns"])
app.include_router(admin_notifications.router, prefix="/api/admin/notifications", tags=["admin-notifications"])
app.include_router(admin_dashboard.router, prefix="/api/admin/dashboard", tags=["admin-dashboard"])
app.include_router(admin_users.router, prefix="/api/admin/users", tags=["admin-users"])
app.include_router(realtime.router, tags=["realtime"])


@app.get("/api/health")
def health(broadcaster: RoomBroadcaster = Depends(get_broadcaster)):
    return {"status": "UP", "realtime": {"connected": broadcaster.connected_count()}}


# --- Entry point for local runs ---
if __name__ == "__main__":
    import uvicorn, os
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("storefront.main:app", host="0.0.0.0", port=port, reload=False)
