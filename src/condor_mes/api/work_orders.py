"""Work-order completion — record produced quantity and push the advance.

Learn: A completion inserts a MES_WORK_EXECUTION row and rolls the
quantities up into MES_WORK_ORDERS. Both writes share one transaction:
either the execution and the new totals are committed together, or
nothing is. Subscribers of the organization are notified only after
the commit succeeds.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from condor_mes.db.engine import get_db
from condor_mes.realtime.notify import notify_work_orders_advance
from condor_mes.realtime.registry import ConnectionRegistry, get_connection_registry
from condor_mes.schemas.production import MesEnvelope, WorkOrderCompletion

logger = structlog.get_logger()
router = APIRouter(prefix="/work-orders")

SELECT_WORK_ORDER = text(
    """
    SELECT wo.work_order_id, wo.planned_quantity, wo.completed_quantity,
           wo.dispatch_pending, wo.scrap_pending, wo.reject_pending,
           EXISTS(SELECT 1 FROM mes_work_execution
                  WHERE work_order_id = wo.work_order_id AND number = :number) AS number_exists
    FROM mes_work_orders wo
    WHERE wo.organization_id = :organization_id AND wo.work_order_number = :work_order_number
    """
)

INSERT_EXECUTION = text(
    """
    INSERT INTO mes_work_execution
        (work_order_id, execution_date, number, ready, scrap, reject, tare, container)
    VALUES
        (:work_order_id, :execution_date, :number, :ready, :scrap, :reject, :tare, :container)
    """
)

UPDATE_WORK_ORDER = text(
    """
    UPDATE mes_work_orders
    SET completed_quantity = :completed_quantity, dispatch_pending = :dispatch_pending,
        scrap_pending = :scrap_pending, reject_pending = :reject_pending, status = :status
    WHERE work_order_id = :work_order_id
    RETURNING work_order_id AS "WorkOrderId", completed_quantity AS "CompletedQuantity",
              scrap_pending AS "ScrapPending", reject_pending AS "RejectPending",
              status AS "Status"
    """
)


def _qty(value) -> float:
    return float(value or 0)


@router.put("/{organization_id}/completions", response_model=MesEnvelope)
async def complete_work_order(
    organization_id: int,
    body: WorkOrderCompletion,
    db: AsyncSession = Depends(get_db),
    connections: ConnectionRegistry = Depends(get_connection_registry),
):
    """Register produced quantity for a work order of the organization."""
    number = str(body.number)
    result = await db.execute(
        SELECT_WORK_ORDER,
        {
            "organization_id": organization_id,
            "work_order_number": str(body.work_order_number),
            "number": number,
        },
    )
    order = result.mappings().first()
    if order is None:
        raise HTTPException(status_code=404, detail="Work order not found")
    if order["number_exists"]:
        raise HTTPException(status_code=409, detail="Product number already registered")

    completed_total = _qty(order["completed_quantity"]) + body.ready
    planned = _qty(order["planned_quantity"])
    if completed_total > planned:
        raise HTTPException(
            status_code=400,
            detail=(
                f"Completed quantity ({completed_total}) exceeds "
                f"planned quantity ({planned})"
            ),
        )

    status = "COMPLETED" if completed_total == planned else "IN_PROCESS"
    try:
        await db.execute(
            INSERT_EXECUTION,
            {
                "work_order_id": order["work_order_id"],
                "execution_date": body.execution_date,
                "number": number,
                "ready": body.ready,
                "scrap": body.scrap,
                "reject": body.reject,
                "tare": body.tare,
                "container": body.container,
            },
        )
        result = await db.execute(
            UPDATE_WORK_ORDER,
            {
                "completed_quantity": completed_total,
                "dispatch_pending": _qty(order["dispatch_pending"]) + body.ready,
                "scrap_pending": _qty(order["scrap_pending"]) + body.scrap,
                "reject_pending": _qty(order["reject_pending"]) + body.reject,
                "status": status,
                "work_order_id": order["work_order_id"],
            },
        )
        updated = dict(result.mappings().one())
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="A record with that code already exists")
    except Exception:
        await db.rollback()
        raise

    notify_work_orders_advance(
        connections,
        organization_id,
        {
            "totalResults": 1,
            "items": {
                "WorkOrderId": updated["WorkOrderId"],
                "CompletedQuantity": updated["CompletedQuantity"],
                "Status": updated["Status"],
                "ExecutionDate": body.execution_date,
                "Number": body.number,
                "Quantity": body.ready,
            },
        },
    )
    logger.info(
        "work_orders.completion_recorded",
        organization_id=organization_id,
        work_order_id=updated["WorkOrderId"],
        status=updated["Status"],
    )
    return MesEnvelope(message="Updated", total_results=1, items=updated)
