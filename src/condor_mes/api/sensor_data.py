"""Sensor data ingestion — store a reading and push it to live dashboards."""

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from condor_mes.db.engine import get_db
from condor_mes.realtime.notify import notify_sensor_data
from condor_mes.realtime.registry import ConnectionRegistry, get_connection_registry
from condor_mes.schemas.production import MesEnvelope, SensorReadingCreate

logger = structlog.get_logger()
router = APIRouter()

SELECT_SENSOR = text(
    "SELECT sensor_id, var FROM mes_sensors WHERE sensor_id = :sensor_id"
)

INSERT_READING = text(
    """
    INSERT INTO mes_sensor_data (sensor_id, value, comment)
    VALUES (:sensor_id, :value, :comment)
    RETURNING value, date_time
    """
)


@router.post("/sensor-data", status_code=201, response_model=MesEnvelope)
async def create_sensor_reading(
    body: SensorReadingCreate,
    db: AsyncSession = Depends(get_db),
    connections: ConnectionRegistry = Depends(get_connection_registry),
):
    """Insert one reading and notify clients subscribed to the sensor."""
    result = await db.execute(SELECT_SENSOR, {"sensor_id": body.sensor_id})
    sensor = result.mappings().first()
    if sensor is None:
        raise HTTPException(status_code=404, detail="Sensor not found")

    result = await db.execute(
        INSERT_READING,
        {"sensor_id": body.sensor_id, "value": body.value, "comment": body.comment},
    )
    reading = result.mappings().one()
    await db.commit()

    payload = {
        "sensorId": body.sensor_id,
        "sensor_var": sensor["var"],
        "value": reading["value"],
        "time": reading["date_time"],
    }
    delivered = notify_sensor_data(connections, body.sensor_id, {"data": payload})
    logger.info("sensor_data.stored", sensor_id=body.sensor_id, subscribers=delivered)

    return MesEnvelope(total_results=1, items=payload)
