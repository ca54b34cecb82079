from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from opos.domain.errors import StorageUnavailable, ValidationError
from opos.domain.models import CustomerInfo, PaymentMethod, Sale, parse_money

log = logging.getLogger("opos.sales")

MSG_SYNCED = "Sale completed successfully!"
MSG_QUEUED = "Sale saved offline. Will sync when online."


@dataclass(frozen=True)
class CheckoutResult:
    sale: Sale
    synced: bool
    message: str
    change_due: Optional[Decimal] = None


class SalesService:
    def __init__(self, cart_service, reconciler, trigger=None):
        self.cart = cart_service
        self.sync = reconciler
        self.trigger = trigger

    def checkout(
        self,
        payment_method: str | PaymentMethod,
        customer_info: dict | CustomerInfo | None = None,
        cash_received: float | Decimal | None = None,
    ) -> CheckoutResult:
        """
        Turn the persisted cart into a Sale and hand it to the reconciler.

        The cashier sees success once the sale is synced or durably queued.
        StorageUnavailable propagates when it could not be queued; the cart
        is then left untouched.
        """
        info = customer_info if isinstance(customer_info, CustomerInfo) else CustomerInfo.from_dict(customer_info)
        sale = Sale.create(self.cart.lines(), payment_method, info)

        change = None
        if cash_received is not None and sale.payment_method is PaymentMethod.CASH:
            received = parse_money(cash_received, "Cash received")
            if received < sale.total_amount:
                raise ValidationError(f"Cash received is less than the total ({sale.total_amount}).")
            change = received - sale.total_amount

        synced = self.sync.submit_new_sale(sale)
        if not synced:
            self._request_background_sync()

        try:
            self.cart.clear()
        except StorageUnavailable as e:
            log.warning("cart_not_cleared sale_id=%s error=%s", sale.id, e)

        log.info(
            "sale_created sale_id=%s items=%s total=%s method=%s synced=%s",
            sale.id,
            len(sale.items),
            sale.total_amount,
            sale.payment_method.value,
            synced,
        )
        return CheckoutResult(
            sale=sale.mark_synced() if synced else sale,
            synced=synced,
            message=MSG_SYNCED if synced else MSG_QUEUED,
            change_due=change,
        )

    def _request_background_sync(self) -> None:
        if self.trigger is None:
            return
        try:
            self.trigger.request_background_sync()
        except Exception as e:
            log.warning("background_sync_request_failed error=%s", e)

    def history(self) -> tuple[list[Sale], list[Sale]]:
        """(pending, synced), newest first."""
        return self.sync.pending_sales(), self.sync.synced_sales()
