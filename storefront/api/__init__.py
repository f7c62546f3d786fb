# storefront/api/__init__.py
from fastapi import FastAPI

from storefront.api.routers import admin, auth, carts, health, orders, payments, webhooks


def include_routers(app: FastAPI) -> FastAPI:
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(admin.router)
    app.include_router(payments.router)
    app.include_router(webhooks.router)
    return app
