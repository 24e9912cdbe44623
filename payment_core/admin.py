import csv
import io

from fastapi import APIRouter, Depends, Response

from payment_core.auth import verify_admin_token
from payment_core.deps import get_order_store, get_payment_store
from payment_core.store import OrderStore, PaymentStore

router = APIRouter(prefix="/api/admin", dependencies=[Depends(verify_admin_token)])

def _select_orders(orders: OrderStore, order_id: int | None, email: str | None, limit: int):
    if order_id is not None:
        order = orders.get(order_id)
        return [order] if order else []
    return orders.list_orders(limit=limit, email=email)


ORDER_CSV_COLUMNS = [
    "id",
    "customer_name",
    "customer_email",
    "service_id",
    "service_name",
    "total_amount",
    "deposit_amount",
    "currency",
    "status",
    "provider",
    "provider_reference",
    "created_at",
]


@router.get("/orders")
def list_orders(
    id: int | None = None,
    email: str | None = None,
    limit: int = 100,
    orders: OrderStore = Depends(get_order_store),
):
    rows = _select_orders(orders, id, email, limit)
    return {"success": True, "data": [row.to_dict() for row in rows]}


@router.get("/orders.csv")
def export_orders(
    id: int | None = None,
    email: str | None = None,
    limit: int = 100,
    orders: OrderStore = Depends(get_order_store),
):
    rows = _select_orders(orders, id, email, limit)
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=ORDER_CSV_COLUMNS, extrasaction="ignore", quoting=csv.QUOTE_ALL)
    writer.writeheader()
    for row in rows:
        writer.writerow({k: "" if v is None else v for k, v in row.to_dict().items()})
    return Response(content=buffer.getvalue(), media_type="text/csv")


@router.get("/payments")
def list_payments(
    id: int | None = None,
    reference: str | None = None,
    limit: int = 100,
    payments: PaymentStore = Depends(get_payment_store),
):
    rows = payments.list_payments(limit=limit, payment_id=id, reference=reference)
    return {"success": True, "data": [row.to_dict() for row in rows]}
