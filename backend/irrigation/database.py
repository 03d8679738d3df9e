# backend/irrigation/database.py
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from .config import settings

def create_db_engine(url):
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
    )

# 1. AUTH DB (users)
auth_engine = create_db_engine(settings.AUTH_DB_URL)
AuthSessionLocal = sessionmaker(auth_engine, class_=AsyncSession, expire_on_commit=False)
BaseAuth = declarative_base()

# 2. CONFIG DB (devices, zones)
config_engine = create_db_engine(settings.CONFIG_DB_URL)
ConfigSessionLocal = sessionmaker(config_engine, class_=AsyncSession, expire_on_commit=False)
BaseConfig = declarative_base()

# 3. DATA DB (sensor readings, acknowledgments)
data_engine = create_db_engine(settings.DATA_DB_URL)
DataSessionLocal = sessionmaker(data_engine, class_=AsyncSession, expire_on_commit=False)
BaseData = declarative_base()

ENGINES = (
    (auth_engine, BaseAuth),
    (config_engine, BaseConfig),
    (data_engine, BaseData),
)

async def get_auth_db():
    async with AuthSessionLocal() as session:
        yield session

async def get_config_db():
    async with ConfigSessionLocal() as session:
        yield session

async def get_data_db():
    async with DataSessionLocal() as session:
        yield session
