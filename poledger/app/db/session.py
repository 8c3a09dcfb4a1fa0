from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from poledger.app.config import settings

engine = create_engine(settings.database_url_normalized, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
