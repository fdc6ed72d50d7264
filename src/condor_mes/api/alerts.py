"""Alert state changes — attend or delete an alert and push it to the organization.

Alerts are raised by the machine monitors outside this service. Here
operators acknowledge them or remove them, and every dashboard
subscribed to the alert's organization hears about it.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from condor_mes.db.engine import get_db
from condor_mes.realtime.notify import notify_alert
from condor_mes.realtime.registry import ConnectionRegistry, get_connection_registry
from condor_mes.schemas.production import MesEnvelope

logger = structlog.get_logger()
router = APIRouter(prefix="/alerts")

ATTEND_ALERT = text(
    """
    UPDATE mes_alerts
    SET status = 'assigned', response_time = now()
    WHERE alert_id = :alert_id
    RETURNING *
    """
)

DELETE_ALERT = text(
    """
    DELETE FROM mes_alerts
    WHERE alert_id = :alert_id
    RETURNING *
    """
)


@router.put("/{alert_id}/attend", response_model=MesEnvelope)
async def attend_alert(
    alert_id: int,
    db: AsyncSession = Depends(get_db),
    connections: ConnectionRegistry = Depends(get_connection_registry),
):
    """Mark an alert as assigned and record the response time."""
    result = await db.execute(ATTEND_ALERT, {"alert_id": alert_id})
    alert = result.mappings().first()
    if alert is None:
        raise HTTPException(status_code=404, detail="Alert not found")
    alert = dict(alert)
    await db.commit()

    notify_alert(connections, alert["organization_id"], alert, "update")
    logger.info("alerts.attended", alert_id=alert_id, organization_id=alert["organization_id"])
    return MesEnvelope(message="Alert status updated", total_results=1, items=[alert])


@router.delete("/{alert_id}", response_model=MesEnvelope)
async def delete_alert(
    alert_id: int,
    db: AsyncSession = Depends(get_db),
    connections: ConnectionRegistry = Depends(get_connection_registry),
):
    result = await db.execute(DELETE_ALERT, {"alert_id": alert_id})
    alert = result.mappings().first()
    if alert is None:
        raise HTTPException(status_code=404, detail="Alert not found")
    alert = dict(alert)
    await db.commit()

    notify_alert(connections, alert["organization_id"], alert, "delete")
    logger.info("alerts.deleted", alert_id=alert_id, organization_id=alert["organization_id"])
    return MesEnvelope(message="Alert deleted", total_results=1, items=[alert])
