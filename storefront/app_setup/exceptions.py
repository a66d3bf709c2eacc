"""
Gestionnaires d'exceptions utilisés par la factory.
- CheckoutError (taxonomie checkout): {"error": "...", "code": "<Type>"} avec son statut.
  Les réponses des endpoints /functions/* portent aussi les en-têtes CORS.
- Autres HTTPException: JSON FastAPI standard {"detail": ...}.
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from storefront.checkout.errors import CheckoutError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    """Enregistre les handlers CheckoutError puis HTTPException (résolution par MRO)."""
    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: Request, exc: CheckoutError):
        if exc.status_code >= 500:
            logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.detail)
        headers = None
        if request.url.path.startswith("/functions/"):
            from storefront.functions.views import CORS_HEADERS
            headers = CORS_HEADERS
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail, "code": exc.code},
            headers=headers,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))
