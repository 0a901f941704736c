"""
Taxonomie des erreurs du checkout.
- ValidationError: corrigeable par l'utilisateur (date manquante, durée < 1 jour, adresse, stock).
- NetworkError: collaborateur injoignable (timeout, transport, 5xx).
- BusinessError: refus explicite d'un collaborateur (stock insuffisant, référence invalide...).
Chaque erreur porte un code stable et, si pertinent, l'article concerné.
"""
from typing import List, Optional


class CheckoutError(Exception):
    status_code = 400

    def __init__(
        self,
        message: str,
        code: str = "checkout_error",
        *,
        item_id: Optional[str] = None,
        item_index: Optional[int] = None,
        issues: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.item_id = item_id
        self.item_index = item_index
        self.issues = list(issues or [])

    def to_dict(self) -> dict:
        payload = {"detail": self.message, "code": self.code}
        if self.item_id is not None:
            payload["item_id"] = self.item_id
        if self.item_index is not None:
            payload["item_index"] = self.item_index
        if self.issues:
            payload["issues"] = self.issues
        return payload


class ValidationError(CheckoutError):
    status_code = 400

    def __init__(self, message: str, code: str = "invalid", **kwargs):
        super().__init__(message, code, **kwargs)


class NetworkError(CheckoutError):
    status_code = 502

    def __init__(self, message: str, code: str = "network_error", **kwargs):
        super().__init__(message, code, **kwargs)


class BusinessError(CheckoutError):
    status_code = 409

    def __init__(self, message: str, code: str = "rejected", **kwargs):
        super().__init__(message, code, **kwargs)


class CheckoutBusyError(CheckoutError):
    status_code = 409

    def __init__(self, message: str = "Une opération est déjà en cours, veuillez patienter", code: str = "busy", **kwargs):
        super().__init__(message, code, **kwargs)


class SessionNotFoundError(CheckoutError):
    status_code = 404

    def __init__(self, message: str = "Aucun checkout en cours", code: str = "session_not_found", **kwargs):
        super().__init__(message, code, **kwargs)


class SessionSchemaError(CheckoutError):
    status_code = 500

    def __init__(self, message: str, code: str = "session_schema", **kwargs):
        super().__init__(message, code, **kwargs)
