"""In-memory sales ledger backing the merchant dashboard.

Pure data model - no I/O. Records live for the lifetime of the process and
are lost on restart. The ledger is append-only: there is no update or
delete path.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ReceiptRecord
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReceiptRecord:
    """A confirmed sale. ``timestamp`` is milliseconds since the epoch."""

    buyer: str
    product: str
    amount: float
    signature: str
    timestamp: int
    image_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "buyer": self.buyer,
            "product": self.product,
            "amount": self.amount,
            "signature": self.signature,
            "timestamp": self.timestamp,
            "imageUrl": self.image_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReceiptRecord:
        return cls(
            buyer=str(data.get("buyer", "")),
            product=str(data.get("product", "")),
            amount=float(data.get("amount", 0)),
            signature=str(data.get("signature", "")),
            timestamp=int(data.get("timestamp", 0)),
            image_url=data.get("imageUrl"),
        )


# ---------------------------------------------------------------------------
# SalesLedger
# ---------------------------------------------------------------------------


@dataclass
class SalesLedger:
    """Ordered receipts plus running totals.

    ``record_sale()`` is the only mutation. ``find()`` returns the first
    receipt for a signature, or None.
    """

    transactions: list[ReceiptRecord] = field(default_factory=list)
    total_sales: float = 0
    receipts_issued: int = 0

    def __len__(self) -> int:
        return len(self.transactions)

    def record_sale(self, record: ReceiptRecord) -> None:
        """Append a receipt and bump the sale and receipt totals."""
        self.transactions.append(record)
        self.total_sales += record.amount
        self.receipts_issued += 1
        logger.info(
            "Recorded sale %s... (%s, %s). Totals: sales=%s, receipts=%d.",
            record.signature[:12], record.product, record.amount,
            self.total_sales, self.receipts_issued,
        )

    def find(self, signature: str) -> ReceiptRecord | None:
        for record in self.transactions:
            if record.signature == signature:
                return record
        return None

    def snapshot(self) -> dict[str, Any]:
        """Dashboard payload: all receipts and totals."""
        return {
            "transactions": [r.to_dict() for r in self.transactions],
            "totalSales": self.total_sales,
            "nftReceiptsIssued": self.receipts_issued,
        }

    def to_json(self) -> str:
        return json.dumps(self.snapshot(), indent=2)
