# routers/dependencies.py
"""
FastAPI dependencies.

Services are built once in ``main.create_app`` and stored on ``app.state``;
routes pull them from the request instead of importing module globals.
"""
from fastapi import Request

from services.invoice_service import InvoiceService
from services.settlement import SettlementOrchestrator


def get_invoice_service(request: Request) -> InvoiceService:
     return request.app.state.invoice_service


def get_orchestrator(request: Request) -> SettlementOrchestrator:
     return request.app.state.orchestrator
