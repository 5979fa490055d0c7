from typing import Optional, Protocol

from sqlalchemy import delete, update

from hutko_gateway.models import CartItem, Order, OrderNote, OrderStatus, utcnow


class OrderStore(Protocol):
    def get_order(self, order_id) -> Optional[Order]: ...

    def save_payment_reference(self, order: Order, reference: str) -> None: ...

    def mark_paid(self, order: Order, transaction_id: Optional[str]) -> bool: ...

    def update_status(self, order: Order, status: str, note: str = "") -> None: ...

    def add_note(self, order: Order, text: str) -> None: ...

    def clear_active_cart(self, order: Order) -> None: ...


class SQLAlchemyOrderStore:
    """Order store backed by the ``orders`` table.

    Every method runs in its own short session and mirrors the change onto the
    (detached) order handle it was given, so callers see the new state.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def get_order(self, order_id) -> Optional[Order]:
        # int() would also take "+100", " 100" and non-ASCII digits
        key = str(order_id)
        if not (key.isascii() and key.isdigit()):
            return None

        db = self._session_factory()
        try:
            return db.get(Order, int(key))
        finally:
            db.close()

    def save_payment_reference(self, order: Order, reference: str) -> None:
        db = self._session_factory()
        try:
            db.execute(update(Order).where(Order.id == order.id).values(payment_reference=reference))
            db.commit()
        finally:
            db.close()
        order.payment_reference = reference

    def mark_paid(self, order: Order, transaction_id: Optional[str]) -> bool:
        """Record the settlement; False when another delivery already did."""
        paid_at = utcnow()
        db = self._session_factory()
        try:
            result = db.execute(
                update(Order)
                .where(Order.id == order.id, Order.paid_at.is_(None))
                .values(paid_at=paid_at, transaction_id=transaction_id, status=OrderStatus.PAID)
            )
            updated = result.rowcount
            db.commit()
        finally:
            db.close()

        if not updated:
            return False
        order.paid_at = paid_at
        order.transaction_id = transaction_id
        order.status = OrderStatus.PAID
        return True

    def update_status(self, order: Order, status: str, note: str = "") -> None:
        db = self._session_factory()
        try:
            db.execute(update(Order).where(Order.id == order.id).values(status=status))
            if note:
                db.add(OrderNote(order_id=order.id, content=note))
            db.commit()
        finally:
            db.close()
        order.status = status

    def add_note(self, order: Order, text: str) -> None:
        db = self._session_factory()
        try:
            db.add(OrderNote(order_id=order.id, content=text))
            db.commit()
        finally:
            db.close()

    def clear_active_cart(self, order: Order) -> None:
        if not order.billing_email:
            return
        db = self._session_factory()
        try:
            db.execute(delete(CartItem).where(CartItem.customer_email == order.billing_email))
            db.commit()
        finally:
            db.close()
