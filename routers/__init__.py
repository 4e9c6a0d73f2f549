# routers/__init__.py
from .invoices import router as invoices_router
from .payments import router as payments_router

__all__ = [
     "invoices_router",
     "payments_router",
]
