#backend/irrigation/models/data.py
from sqlalchemy import Column, Integer, String, JSON, BigInteger
from irrigation.database import BaseData

class SensorReading(BaseData):
    """
    One sample batch for a zone: a global reading (ambient temp, pressure)
    plus one entry per local sensor node. Rows are never updated.
    """
    __tablename__ = "sensor_readings"

    id = Column(Integer, primary_key=True)
    zone_id = Column(Integer, index=True, nullable=False)
    device_id = Column(String(64), index=True, nullable=False)
    timestamp = Column(BigInteger, index=True, nullable=False)

    global_data = Column("global", JSON, nullable=False, default=dict)
    locals = Column(JSON, nullable=False, default=list)

class Acknowledgment(BaseData):
    __tablename__ = "acknowledgments"

    id = Column(Integer, primary_key=True)
    suggestion_id = Column(String(128), index=True, nullable=False)
    user_id = Column(Integer, index=True, nullable=False)
    acknowledged_at = Column(BigInteger, nullable=False)
    status = Column(String(20), default="acknowledged", nullable=False)
