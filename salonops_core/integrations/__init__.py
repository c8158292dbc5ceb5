"""
POS Integrations
================

Outbound clients for the external point-of-sale system of record.
"""

from .base import PosAppointment, PosClient, PosClientRecord

__all__ = ["PosAppointment", "PosClient", "PosClientRecord"]
