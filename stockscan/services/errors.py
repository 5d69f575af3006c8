"""
Taxonomie des erreurs du moteur de réconciliation.

Les erreurs "récupérables" (NotFound, OrderConstraintViolation,
PreconditionMissing) sont exposées à l'appelant sous forme d'un message
unique effaçable ; PersistenceFailure et PartialRpcFailure ne remontent
jamais non interceptées : finalize() renvoie toujours un résultat structuré.
"""

from __future__ import annotations


class StoreError(Exception):
    """Échec d'un appel au store (réseau, SQL, réponse mal formée)."""


class FulfillmentError(Exception):
    code = "FULFILLMENT_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(FulfillmentError):
    code = "NOT_FOUND"


class OrderConstraintViolation(FulfillmentError):
    code = "ORDER_CONSTRAINT_VIOLATION"

    def __init__(self, message: str, max_allowed: int = 0):
        super().__init__(message)
        self.max_allowed = max_allowed


class PreconditionMissing(FulfillmentError):
    code = "PRECONDITION_MISSING"


class PersistenceFailure(FulfillmentError):
    code = "PERSISTENCE_FAILURE"


class PartialRpcFailure(FulfillmentError):
    code = "PARTIAL_RPC_FAILURE"

    def __init__(self, message: str, failed_product_ids: list[int] | None = None):
        super().__init__(message)
        self.failed_product_ids = list(failed_product_ids or [])


class InvalidQuantity(FulfillmentError):
    code = "INVALID_QUANTITY"
