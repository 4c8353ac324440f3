"""
Fulfillment Orchestrator - the single entry point for state-changing
requests from pharmacist and patient flows.

Each public operation runs in one database transaction (unit of work):
the status update, stock effects and tracking append either all commit
or all roll back. Failures come back as a typed ``OperationResult``
instead of propagating; a store error is rolled back and reported as
PersistenceFailure without being retried. Notifications go out only
after a successful commit and can never undo it.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import APP_TZ, FulfillmentSettings, get_settings
from ..core.exceptions import (
    Forbidden,
    FulfillmentError,
    InvalidRequest,
    InvalidTransition,
    NotFound,
    PersistenceFailure,
    SlotUnavailable,
)
from ..core.logging_config import get_logger, log_performance
from ..core.results import OperationResult
from ..db.session import SessionLocal
from ..domain.appointment_rules import (
    parse_appointment_status,
    validate_appointment_transition,
)
from ..domain.entities import (
    Actor,
    Appointment,
    AppointmentAction,
    AppointmentStatus,
    ConsistencyIssue,
    Order,
    OrderStatus,
    OrderTotals,
    PaymentMethod,
    StockEntry,
    TrackingEntry,
    ensure_utc,
    utc_now,
)
from ..domain.interfaces import IIdentityProvider, INotificationDispatcher
from ..domain.numbering import generate_order_number, generate_tracking_number
from ..repositories import (
    AppointmentRepository,
    OrderRepository,
    StockRepository,
    TrackingRepository,
)
from ..schemas.dtos import (
    AppointmentCreateRequest,
    Cart,
    parse_payment_method,
    validate_delivery_address,
)
from .appointment_guard import AppointmentSchedulerGuard
from .notification_dispatcher import LoggingNotificationDispatcher
from .order_state_machine import OrderStateMachine
from .stock_ledger import StockLedger
from .tracking_ledger import TrackingLedger

logger = get_logger(__name__)


@dataclass
class _Components:
    """Repositories and services bound to one unit of work."""

    orders: OrderRepository
    appointments: AppointmentRepository
    stock: StockLedger
    tracking: TrackingLedger
    state_machine: OrderStateMachine


class FulfillmentOrchestrator:
    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        settings: Optional[FulfillmentSettings] = None,
        notifier: Optional[INotificationDispatcher] = None,
        identity: Optional[IIdentityProvider] = None,
        clock: Callable[[], datetime] = utc_now,
        tz: ZoneInfo = APP_TZ,
    ):
        self.session_factory = session_factory or SessionLocal
        self.settings = settings or get_settings()
        self.notifier = notifier or LoggingNotificationDispatcher()
        self.identity = identity
        self.clock = clock
        self.tz = tz
        self.guard = AppointmentSchedulerGuard(
            cutoff_hours=self.settings.cancellation_cutoff_hours, tz=tz
        )

    # ===========================
    # Orders
    # ===========================

    def place_order(
        self,
        cart: Cart,
        payment_method: Union[str, PaymentMethod],
        address: str,
        actor: Optional[Actor] = None,
        delivery_instructions: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> OperationResult[Order]:
        """Create a pending order and its first tracking entry. Stock is untouched."""
        actor = self._actor(actor)

        def work(db: Session) -> Order:
            cart.validate()
            method = parse_payment_method(payment_method)
            delivery_address = validate_delivery_address(address)
            items = [item.to_line_item() for item in cart.items]
            pricing = self.settings.pricing
            totals = OrderTotals.compute(
                items, pricing.tax_rate, pricing.delivery_fee, cart.discount
            )
            now = self.clock()
            order = Order.with_totals(
                items,
                totals,
                facility_id=cart.facility_id,
                patient_id=cart.patient_id,
                status=OrderStatus.PENDING,
                delivery_address=delivery_address,
                delivery_instructions=delivery_instructions,
                payment_method=method,
                order_number=generate_order_number(now),
                tracking_number=generate_tracking_number(now),
                notes=notes,
            )
            c = self._components(db)
            created = c.orders.create(order)
            c.tracking.append_entry(
                created.id,
                OrderStatus.PENDING,
                actor=actor,
                tracking_number=created.tracking_number,
            )
            logger.info(
                "Order placed",
                extra={
                    "context": {
                        "order_id": created.id,
                        "order_number": created.order_number,
                        "facility_id": created.facility_id,
                        "patient_id": created.patient_id,
                        "item_count": created.item_count,
                        "final_amount": str(created.final_amount),
                    }
                },
            )
            return created

        return self._execute("place_order", work, "order.placed", _order_payload)

    def advance_order(
        self,
        order_id: int,
        next_status: Union[str, OrderStatus],
        actor: Optional[Actor] = None,
        description: Optional[str] = None,
        location: Optional[str] = None,
        estimated_delivery: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> OperationResult[Order]:
        actor = self._actor(actor)

        def work(db: Session) -> Order:
            order, _entry = self._components(db).state_machine.apply_transition(
                order_id,
                next_status,
                actor,
                description=description,
                location=location,
                estimated_delivery=ensure_utc(estimated_delivery),
                notes=notes,
            )
            return order

        return self._execute(
            "advance_order",
            work,
            "order.status_changed",
            _order_payload,
            {"order_id": order_id, "requested": str(getattr(next_status, "value", next_status))},
        )

    advance_order_status = advance_order

    def cancel_order(
        self, order_id: int, actor: Optional[Actor] = None, reason: Optional[str] = None
    ) -> OperationResult[Order]:
        return self.advance_order(
            order_id, OrderStatus.CANCELLED, actor=actor, description=reason
        )

    def get_order(self, order_id: int) -> OperationResult[Order]:
        return self._execute(
            "get_order",
            lambda db: self._components(db).state_machine.get_order(order_id),
        )

    def get_order_tracking(self, order_id: int) -> OperationResult[List[TrackingEntry]]:
        def work(db: Session) -> List[TrackingEntry]:
            c = self._components(db)
            c.state_machine.get_order(order_id)
            return c.tracking.get_timeline(order_id).to_list()

        return self._execute("get_order_tracking", work)

    def get_tracking_by_number(
        self, tracking_number: str
    ) -> OperationResult[List[TrackingEntry]]:
        def work(db: Session) -> List[TrackingEntry]:
            entries = self._components(db).tracking.find_by_tracking_number(
                tracking_number
            ).to_list()
            if not entries:
                raise NotFound("tracking number", tracking_number)
            return entries

        return self._execute("get_tracking_by_number", work)

    # ===========================
    # Stock
    # ===========================

    def update_stock(
        self,
        facility_id: int,
        medicine_id: int,
        delta: int,
        reason: str,
        actor: Optional[Actor] = None,
    ) -> OperationResult[StockEntry]:
        actor = self._actor(actor)

        def work(db: Session) -> StockEntry:
            return self._components(db).stock.adjust_stock(
                facility_id, medicine_id, delta, reason, actor
            )

        return self._execute(
            "update_stock",
            work,
            "stock.adjusted",
            self._stock_payload,
            {"facility_id": facility_id, "medicine_id": medicine_id, "delta": delta},
        )

    def add_stock_entry(
        self, entry: StockEntry, actor: Optional[Actor] = None
    ) -> OperationResult[StockEntry]:
        actor = self._actor(actor)

        def work(db: Session) -> StockEntry:
            return self._components(db).stock.add_entry(entry)

        return self._execute(
            "add_stock_entry",
            work,
            "stock.added",
            self._stock_payload,
            {"facility_id": entry.facility_id, "medicine_id": entry.medicine_id, "actor_id": actor.id},
        )

    # ===========================
    # Appointments
    # ===========================

    def book_appointment(
        self, request: AppointmentCreateRequest, actor: Optional[Actor] = None
    ) -> OperationResult[Appointment]:
        def work(db: Session) -> Appointment:
            appointment = Appointment(
                facility_id=request.facility_id,
                patient_id=request.patient_id,
                professional_id=request.professional_id,
                appointment_date=request.appointment_date,
                appointment_time=request.appointment_time,
                reason=request.reason,
            )
            scheduled_at = appointment.scheduled_at(self.tz)
            if scheduled_at <= self.clock():
                raise InvalidRequest(
                    "Appointment must be scheduled in the future",
                    field="appointment_date",
                )
            repo = self._components(db).appointments
            if repo.find_conflicting(
                appointment.facility_id,
                appointment.appointment_date,
                appointment.appointment_time,
            ):
                raise SlotUnavailable(appointment.facility_id, scheduled_at)
            return repo.create(appointment)

        return self._execute(
            "book_appointment", work, "appointment.booked", _appointment_payload
        )

    def cancel_appointment(
        self,
        appointment_id: int,
        actor: Optional[Actor] = None,
        reason: Optional[str] = None,
    ) -> OperationResult[Appointment]:
        actor = self._actor(actor)

        def work(db: Session) -> Appointment:
            repo = self._components(db).appointments
            appointment = self._get_appointment(repo, appointment_id)
            self._ensure_patient_owns(appointment, actor)
            self.guard.ensure_allowed(appointment, AppointmentAction.CANCEL, self.clock())
            updated = replace(
                appointment,
                status=AppointmentStatus.CANCELLED,
                notes=reason or appointment.notes,
            )
            return self._swap_appointment(repo, updated, appointment)

        return self._execute(
            "cancel_appointment",
            work,
            "appointment.cancelled",
            _appointment_payload,
            {"appointment_id": appointment_id, "actor_id": actor.id},
        )

    def reschedule_appointment(
        self,
        appointment_id: int,
        new_datetime: datetime,
        actor: Optional[Actor] = None,
    ) -> OperationResult[Appointment]:
        actor = self._actor(actor)

        def work(db: Session) -> Appointment:
            repo = self._components(db).appointments
            appointment = self._get_appointment(repo, appointment_id)
            self._ensure_patient_owns(appointment, actor)
            now = self.clock()
            self.guard.ensure_allowed(appointment, AppointmentAction.RESCHEDULE, now)
            target = (
                new_datetime
                if new_datetime.tzinfo is not None
                else new_datetime.replace(tzinfo=self.tz)
            )
            if target <= now:
                raise InvalidRequest(
                    "New appointment time must be in the future",
                    field="appointment_date",
                )
            local = target.astimezone(self.tz)
            new_date, new_time = local.date(), local.time()
            if repo.find_conflicting(
                appointment.facility_id, new_date, new_time, exclude_id=appointment.id
            ):
                raise SlotUnavailable(appointment.facility_id, local)
            updated = replace(
                appointment,
                status=AppointmentStatus.RESCHEDULED,
                appointment_date=new_date,
                appointment_time=new_time,
            )
            return self._swap_appointment(repo, updated, appointment)

        return self._execute(
            "reschedule_appointment",
            work,
            "appointment.rescheduled",
            _appointment_payload,
            {"appointment_id": appointment_id, "actor_id": actor.id},
        )

    def update_appointment_status(
        self,
        appointment_id: int,
        status: Union[str, AppointmentStatus],
        actor: Optional[Actor] = None,
        notes: Optional[str] = None,
    ) -> OperationResult[Appointment]:
        """Professional-side transitions: confirm, complete, no-show."""
        actor = self._actor(actor)

        def work(db: Session) -> Appointment:
            requested = parse_appointment_status(status)
            if requested in (AppointmentStatus.CANCELLED, AppointmentStatus.RESCHEDULED):
                action = "cancel" if requested == AppointmentStatus.CANCELLED else "reschedule"
                raise InvalidRequest(
                    f"Use the {action} action for this change",
                    field="status",
                )
            repo = self._components(db).appointments
            appointment = self._get_appointment(repo, appointment_id)
            validate_appointment_transition(appointment.status, requested)
            updated = replace(appointment, status=requested, notes=notes or appointment.notes)
            return self._swap_appointment(repo, updated, appointment)

        return self._execute(
            "update_appointment_status",
            work,
            "appointment.status_changed",
            _appointment_payload,
            {"appointment_id": appointment_id, "actor_id": actor.id},
        )

    def get_allowed_appointment_actions(
        self, appointment_id: int, actor: Optional[Actor] = None
    ) -> OperationResult[Tuple[Appointment, FrozenSet[AppointmentAction]]]:
        def work(db: Session) -> Tuple[Appointment, FrozenSet[AppointmentAction]]:
            appointment = self._get_appointment(
                self._components(db).appointments, appointment_id
            )
            self._ensure_patient_owns(appointment, actor)
            return appointment, self.guard.get_allowed_actions(appointment, self.clock())

        return self._execute("get_allowed_appointment_actions", work)

    # ===========================
    # Audit
    # ===========================

    def check_consistency(self) -> OperationResult[List[ConsistencyIssue]]:
        """Orders whose stored status differs from their latest tracking entry."""

        def work(db: Session) -> List[ConsistencyIssue]:
            c = self._components(db)
            return c.tracking.check_consistency(c.orders.list_statuses())

        return self._execute("check_consistency", work)

    # ===========================
    # Internals
    # ===========================

    def _components(self, db: Session) -> _Components:
        orders = OrderRepository(db)
        stock = StockLedger(
            StockRepository(db),
            low_stock_threshold=self.settings.low_stock_threshold,
            expiry_warning_days=self.settings.expiry_warning_days,
        )
        tracking = TrackingLedger(TrackingRepository(db), clock=self.clock)
        return _Components(
            orders=orders,
            appointments=AppointmentRepository(db),
            stock=stock,
            tracking=tracking,
            state_machine=OrderStateMachine(orders, stock, tracking),
        )

    def _actor(self, actor: Optional[Actor]) -> Actor:
        if actor is not None:
            return actor
        if self.identity is not None:
            return self.identity.current_actor()
        return Actor.system()

    @staticmethod
    def _get_appointment(repo: AppointmentRepository, appointment_id: int) -> Appointment:
        appointment = repo.get_by_id(appointment_id)
        if appointment is None:
            raise NotFound("appointment", appointment_id)
        return appointment

    @staticmethod
    def _ensure_patient_owns(appointment: Appointment, actor: Optional[Actor]) -> None:
        if actor is None or actor.role != "patient":
            return
        if appointment.patient_id != actor.id:
            raise Forbidden("appointment", appointment.id)

    @staticmethod
    def _swap_appointment(
        repo: AppointmentRepository, updated: Appointment, expected: Appointment
    ) -> Appointment:
        if not repo.compare_and_update(updated, expected):
            current = repo.get_by_id(expected.id)
            raise InvalidTransition(
                current.status.value if current else "unknown",
                updated.status.value,
                entity="appointment",
            )
        return repo.get_by_id(expected.id)

    def _stock_payload(self, entry: StockEntry) -> Dict[str, Any]:
        return {
            "facility_id": entry.facility_id,
            "medicine_id": entry.medicine_id,
            "quantity": entry.quantity,
            "stock_status": entry.status(self.settings.low_stock_threshold).value,
        }

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                f"Persistence failure during {operation}",
                extra={"context": {"operation": operation, "error": str(e)}},
                exc_info=True,
            )
            raise PersistenceFailure(operation, type(e).__name__) from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _execute(
        self,
        operation: str,
        work: Callable[[Session], Any],
        event: Optional[str] = None,
        payload: Optional[Callable[[Any], Dict[str, Any]]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> OperationResult:
        start = time.perf_counter()
        try:
            with self._unit_of_work(operation) as db:
                value = work(db)
        except FulfillmentError as e:
            self._log_failure(operation, e, context)
            return OperationResult.failure(e)
        except ValueError as e:
            error = InvalidRequest(str(e))
            self._log_failure(operation, error, context)
            return OperationResult.failure(error)

        log_performance(operation, (time.perf_counter() - start) * 1000, **(context or {}))
        if event is not None:
            self._notify(event, payload(value) if payload else {})
        return OperationResult.success(value)

    def _log_failure(
        self, operation: str, error: FulfillmentError, context: Optional[Dict[str, Any]]
    ) -> None:
        if isinstance(error, PersistenceFailure):
            return  # already logged with the traceback
        logger.warning(
            f"{operation} rejected: {error.message}",
            extra={
                "context": {
                    "operation": operation,
                    "error_code": error.code,
                    **(context or {}),
                }
            },
        )

    def _notify(self, event: str, payload: Dict[str, Any]) -> None:
        try:
            self.notifier.dispatch(event, payload)
        except Exception:
            # The change is committed; a failed notification must not undo it
            logger.warning(
                "Notification dispatch failed",
                extra={"context": {"event": event}},
                exc_info=True,
            )


def _order_payload(order: Order) -> Dict[str, Any]:
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "patient_id": order.patient_id,
        "facility_id": order.facility_id,
        "status": order.status.value,
    }


def _appointment_payload(appointment: Appointment) -> Dict[str, Any]:
    return {
        "appointment_id": appointment.id,
        "patient_id": appointment.patient_id,
        "facility_id": appointment.facility_id,
        "status": appointment.status.value,
        "appointment_date": appointment.appointment_date.isoformat(),
        "appointment_time": appointment.appointment_time.isoformat(),
    }
