from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, update

from ..db.base import Order as OrderModel
from ..db.base import OrderItem as OrderItemModel
from ..domain.entities import Order, OrderLineItem, OrderStatus, ensure_utc
from ..domain.interfaces import IOrderRepository


class OrderRepository(IOrderRepository):
    def __init__(self, db_session):
        self.db = db_session

    def get_by_id(self, order_id: int) -> Optional[Order]:
        db_order = self.db.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return self._to_domain(db_order) if db_order else None

    def create(self, order: Order) -> Order:
        db_order = OrderModel(
            order_number=order.order_number,
            tracking_number=order.tracking_number,
            facility_id=order.facility_id,
            patient_id=order.patient_id,
            status=order.status.value,
            subtotal=order.subtotal,
            tax_amount=order.tax_amount,
            delivery_fee=order.delivery_fee,
            discount_amount=order.discount_amount,
            final_amount=order.final_amount,
            delivery_address=order.delivery_address,
            delivery_instructions=order.delivery_instructions,
            payment_method=order.payment_method.value,
            stock_committed=order.stock_committed,
            estimated_delivery=order.estimated_delivery,
            notes=order.notes,
            items=[
                OrderItemModel(
                    medicine_id=item.medicine_id,
                    medicine_name=item.medicine_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    line_total=item.line_total,
                )
                for item in order.items
            ],
        )
        self.db.add(db_order)
        self.db.flush()
        return self._to_domain(db_order)

    def compare_and_set_status(
        self,
        order_id: int,
        expected: OrderStatus,
        new: OrderStatus,
        *,
        stock_committed: bool,
        estimated_delivery: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> bool:
        values = {"status": OrderStatus(new).value, "stock_committed": stock_committed}
        if estimated_delivery is not None:
            values["estimated_delivery"] = estimated_delivery
        if notes is not None:
            values["notes"] = notes
        result = self.db.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.status == OrderStatus(expected).value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_orders(
        self,
        patient_id: Optional[int] = None,
        facility_id: Optional[int] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Order]:
        stmt = select(OrderModel)
        if patient_id is not None:
            stmt = stmt.where(OrderModel.patient_id == patient_id)
        if facility_id is not None:
            stmt = stmt.where(OrderModel.facility_id == facility_id)
        if status is not None:
            stmt = stmt.where(OrderModel.status == OrderStatus(status).value)
        stmt = (
            stmt.order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return [self._to_domain(row) for row in self.db.execute(stmt).scalars()]

    def list_statuses(self) -> Dict[int, OrderStatus]:
        rows = self.db.execute(select(OrderModel.id, OrderModel.status))
        return {order_id: OrderStatus(status) for order_id, status in rows}

    def _to_domain(self, db_order: OrderModel) -> Order:
        items = [
            OrderLineItem(
                id=item.id,
                medicine_id=item.medicine_id,
                medicine_name=item.medicine_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total,
            )
            for item in db_order.items
        ]
        return Order(
            id=db_order.id,
            order_number=db_order.order_number,
            tracking_number=db_order.tracking_number,
            facility_id=db_order.facility_id,
            patient_id=db_order.patient_id,
            items=items,
            status=OrderStatus(db_order.status),
            subtotal=db_order.subtotal,
            tax_amount=db_order.tax_amount,
            delivery_fee=db_order.delivery_fee,
            discount_amount=db_order.discount_amount,
            final_amount=db_order.final_amount,
            delivery_address=db_order.delivery_address,
            delivery_instructions=db_order.delivery_instructions,
            payment_method=db_order.payment_method,
            stock_committed=bool(db_order.stock_committed),
            estimated_delivery=ensure_utc(db_order.estimated_delivery),
            notes=db_order.notes,
            created_at=ensure_utc(db_order.created_at),
            updated_at=ensure_utc(db_order.updated_at),
        )
