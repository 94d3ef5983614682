"""
Clients for services outside our database: the DOKU payment gateway and the
template email provider.
"""

from .doku_client import CheckoutSession, DokuClient, DokuCredentials

__all__ = ["CheckoutSession", "DokuClient", "DokuCredentials"]
