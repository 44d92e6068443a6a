"""
State tables for the pool: shares, tickets, asset custody, epoch ledger.
"""

from .custody import AssetCustody
from .epochs import EpochLedger, EpochRecord
from .shares import ShareTable
from .tickets import TicketRegistry

__all__ = [
    "AssetCustody",
    "EpochLedger",
    "EpochRecord",
    "ShareTable",
    "TicketRegistry",
]
