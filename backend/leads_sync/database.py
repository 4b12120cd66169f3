from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from leads_sync.config import settings
import os

# Создаем директорию для базы данных, если её нет
db_dir = os.path.dirname(settings.database_url.replace("sqlite:///", ""))
if "sqlite" in settings.database_url and db_dir and not os.path.exists(db_dir):
    os.makedirs(db_dir, exist_ok=True)

engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {}
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency для получения сессии базы данных"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
