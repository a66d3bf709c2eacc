"""
Taxonomie des erreurs du parcours checkout/commande.

Toutes dérivent de CheckoutError, elle-même une HTTPException FastAPI:
les services les lèvent comme le reste du backend lève HTTPException,
et le handler dédié (app_setup.exceptions) les rend en {"error", "code"}.
"""
from typing import Optional
from fastapi import HTTPException


class CheckoutError(HTTPException):
    status_code = 400
    default_detail = "Erreur de paiement"

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(
            status_code=status_code or type(self).status_code,
            detail=detail or self.default_detail,
        )

    @property
    def code(self) -> str:
        return type(self).__name__


class Unauthorized(CheckoutError):
    status_code = 401
    default_detail = "Non authentifié"


class EmptyCart(CheckoutError):
    status_code = 400
    default_detail = "Panier vide"


class InsufficientStock(CheckoutError):
    status_code = 409
    default_detail = "Stock insuffisant"


class PaymentSessionFailed(CheckoutError):
    status_code = 502
    default_detail = "Impossible de créer la session de paiement"


class PaymentNotCompleted(CheckoutError):
    status_code = 402
    default_detail = "Paiement non confirmé"


class ValidationError(CheckoutError):
    status_code = 422
    default_detail = "Données invalides"


class PersistenceError(CheckoutError):
    status_code = 500
    default_detail = "Erreur d'enregistrement"


class PaymentAmountMismatch(CheckoutError):
    # Le panier a changé entre le paiement et la matérialisation
    status_code = 409
    default_detail = "Le montant payé ne correspond plus au panier"
