"""Ledger and billing connectors."""

from .base import LedgerConnectorBase, BillingConnectorBase
from .tripletex_connector import TripletexConnector, create_auth_header
from .chargebee_connector import ChargebeeConnector

__all__ = [
    "LedgerConnectorBase",
    "BillingConnectorBase",
    "TripletexConnector",
    "create_auth_header",
    "ChargebeeConnector",
]
