"""
Order Service

Persistence operations on order records. Every write is a partial update of
named columns so concurrent writers (charge requests, overlapping gateway
notifications) never clobber each other's fields.
"""
import logging
from typing import Dict, Any, Optional, Sequence
from sqlalchemy import select, update, case
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import OrderModel, OrderNotificationModel, utc_now, to_naive_utc
from ..models.orders import ChargeRequest
from .status_mapping import OrderStatus, PaymentSubStatus, RESTARTABLE_STATUSES

logger = logging.getLogger(__name__)


# ============================================================================
# Order Creation
# ============================================================================

async def upsert_pending_order(db: AsyncSession, request: ChargeRequest) -> None:
    """
    Insert the order as pending, or merge the request into an existing row.

    Args:
        db: Database session
        request: Validated charge request

    On conflict the monetary and descriptive columns are merged. Status and
    internal sub-status go back to pending only when the order is still
    restartable (pending or failed); creation timestamps are preserved.
    """
    now = utc_now()
    discount = request.discount

    values = {
        "user_id": request.user_id,
        "order_id": request.order_id,
        "status": OrderStatus.PENDING.value,
        "payment_status_internal": PaymentSubStatus.AWAITING_CHARGE.value,
        "total_amount": request.gross_amount,
        "product_subtotal": request.product_subtotal,
        "shipping_cost": request.shipping_cost,
        "tax_amount": request.tax_amount,
        "discount_applied": discount if discount > 0 else None,
        "applied_promo_code": request.applied_promo_code,
        "payment_method": request.initial_payment_method or request.payment_type,
        "address": request.full_address_details,
        "items": request.items_from_app,
        "delivery_date": to_naive_utc(request.delivery_date),
        "order_date": now,
        "created_at": now,
        "updated_at": now,
    }

    stmt = sqlite_insert(OrderModel).values(**values)
    restartable = OrderModel.status.in_(RESTARTABLE_STATUSES)
    merged = {
        name: stmt.excluded[name]
        for name in (
            "total_amount", "product_subtotal", "shipping_cost", "tax_amount",
            "discount_applied", "applied_promo_code", "payment_method",
            "address", "items", "delivery_date", "updated_at",
        )
    }
    merged["status"] = case((restartable, stmt.excluded.status), else_=OrderModel.status)
    merged["payment_status_internal"] = case(
        (restartable, stmt.excluded.payment_status_internal),
        else_=OrderModel.payment_status_internal
    )

    await db.execute(
        stmt.on_conflict_do_update(index_elements=["user_id", "order_id"], set_=merged)
    )
    await db.commit()

    logger.info(f"Order {request.order_id} for user {request.user_id} saved as pending")


# ============================================================================
# Order Updates
# ============================================================================

async def update_order(
    db: AsyncSession,
    user_id: str,
    order_id: str,
    fields: Dict[str, Any],
    status_in: Optional[Sequence[str]] = None
) -> int:
    """
    Merge fields into an order.

    Args:
        status_in: Only update while the order has one of these statuses

    Returns:
        Number of rows updated (0 if the order does not exist or was skipped)
    """
    stmt = update(OrderModel).where(OrderModel.user_id == user_id, OrderModel.order_id == order_id)
    if status_in is not None:
        stmt = stmt.where(OrderModel.status.in_(status_in))

    result = await db.execute(
        stmt
        .values(**fields, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount


async def record_charge_result(
    db: AsyncSession,
    user_id: str,
    order_id: str,
    fields: Dict[str, Any],
    progress_fields: Dict[str, Any]
) -> int:
    """
    Merge a gateway charge/status response into an order.

    fields are always written. progress_fields (sub-status, gateway
    transaction status) only land while the order is still awaiting its
    charge; a notification processed in the meantime keeps its values.
    Both are applied in one UPDATE.
    """
    awaiting = OrderModel.payment_status_internal == PaymentSubStatus.AWAITING_CHARGE.value
    guarded = {
        name: case((awaiting, value), else_=getattr(OrderModel, name))
        for name, value in progress_fields.items()
    }
    return await update_order(db, user_id, order_id, {**fields, **guarded})


async def mark_order_failed(
    db: AsyncSession,
    user_id: str,
    order_id: str,
    error_details: str,
    payment_status_internal: str
) -> None:
    """
    Mark an order failed with a reason.

    Orders a notification already moved past pending are left alone.
    """
    updated = await update_order(db, user_id, order_id, {
        "status": OrderStatus.FAILED.value,
        "payment_status_internal": payment_status_internal,
        "error_details": error_details,
    }, status_in=RESTARTABLE_STATUSES)
    if updated:
        logger.info(f"Order {order_id} marked failed ({payment_status_internal})")
    else:
        logger.warning(f"Order {order_id} not marked failed: missing or already progressed")


async def apply_notification_update(
    db: AsyncSession,
    order: OrderModel,
    expected_status: Optional[str],
    fields: Dict[str, Any],
    payload: Dict[str, Any]
) -> bool:
    """
    Apply a notification's field updates and archive its raw payload.

    The UPDATE only matches while the order still has expected_status; if
    another writer moved the status in between, nothing is written.

    Returns:
        True if applied, False if the status changed underneath
    """
    result = await db.execute(
        update(OrderModel)
        .where(OrderModel.id == order.id, OrderModel.status == expected_status)
        .values(**fields, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        return False

    db.add(OrderNotificationModel(order_pk=order.id, payload=payload))
    await db.commit()
    return True


# ============================================================================
# Order Retrieval
# ============================================================================

async def get_order(db: AsyncSession, user_id: str, order_id: str) -> Optional[OrderModel]:
    """Fetch a user's order, re-reading current database state."""
    result = await db.execute(
        select(OrderModel)
        .where(OrderModel.user_id == user_id, OrderModel.order_id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def find_order_by_order_id(db: AsyncSession, order_id: str) -> Optional[OrderModel]:
    """
    Locate an order by its business identifier across all users.

    Gateway notifications carry only the order id, not the owner.
    """
    result = await db.execute(
        select(OrderModel)
        .where(OrderModel.order_id == order_id)
        .order_by(OrderModel.id)
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_notification_history(db: AsyncSession, order_pk: int) -> list:
    """Raw notification payloads for an order, oldest first."""
    result = await db.execute(
        select(OrderNotificationModel.payload)
        .where(OrderNotificationModel.order_pk == order_pk)
        .order_by(OrderNotificationModel.id)
    )
    return list(result.scalars().all())
