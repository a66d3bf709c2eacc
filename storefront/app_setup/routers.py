"""
Registre central des routers.
- Functions: create-payment-intent, create-order
- API v1: cart, orders, payments (webhook)
- Health
"""
from fastapi import FastAPI
from storefront.functions import views as functions_views
from storefront.cart import views as cart_views
from storefront.orders import views as orders_views
from storefront.payments import views as payments_views
from storefront.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    """Agrège tous les routers; les préfixes évitent les conflits de chemins."""
    app.include_router(functions_views.router)
    app.include_router(cart_views.router)
    app.include_router(orders_views.router)
    app.include_router(payments_views.router)
    app.include_router(health_router)
