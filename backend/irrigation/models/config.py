from sqlalchemy import Column, Integer, String, Boolean, Float, JSON, BigInteger, Text
from irrigation.database import BaseConfig

class Device(BaseConfig):
    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(String(64), unique=True, index=True, nullable=False)
    owner_user_id = Column(Integer, index=True, nullable=False)
    max_zones = Column(Integer, default=4, nullable=False)
    max_sensors = Column(Integer, default=12, nullable=False)
    configured_zones = Column(Integer, default=0, nullable=False)
    status = Column(String(20), default="offline")
    last_seen = Column(BigInteger, default=0)
    firmware_version = Column(String(32), nullable=True)
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)

class Zone(BaseConfig):
    """
    Irrigated area tied to one device. soil_moisture / temperature / humidity
    hold the last values seen by ingestion, not a history.
    """
    __tablename__ = "zones"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    owner_user_id = Column(Integer, index=True, nullable=False)
    device_id = Column(String(64), index=True, nullable=False)
    plant_type = Column(String(100), nullable=False)
    soil_type = Column(String(100), nullable=False)
    location = Column(JSON, nullable=True)
    area = Column(Float, default=0.0)
    plant_count = Column(Integer, default=0)
    ai_enabled = Column(Boolean, default=False)
    description = Column(Text, default="")
    status = Column(String(20), default="active")

    soil_moisture = Column(Float, default=0.0)
    temperature = Column(Float, default=0.0)
    humidity = Column(Float, default=0.0)
    last_watered = Column(BigInteger, nullable=True)

    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)
