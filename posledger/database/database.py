from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from posledger.core.config import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(url: str, echo: bool = False):
    """Crea el engine según el backend (PostgreSQL en producción, SQLite en desarrollo/tests)."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        echo=echo
    )


sync_engine = build_engine(settings.database_url, echo=settings.DEBUG)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=sync_engine)

Base = declarative_base()


def get_db():
    """Genera una sesión de base de datos síncrona."""
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def import_models():
    """Importa todos los modelos para registrarlos en Base.metadata"""
    import posledger.modules.shifts.models  # noqa: F401
    import posledger.modules.credits.models  # noqa: F401
    import posledger.modules.inventory.models  # noqa: F401
    import posledger.modules.events.models  # noqa: F401


def create_tables(engine=None):
    """Crea las tablas del ledger (solo desarrollo/tests; en producción usar migraciones)."""
    import_models()
    Base.metadata.create_all(bind=engine or sync_engine)


def drop_tables(engine=None):
    import_models()
    Base.metadata.drop_all(bind=engine or sync_engine)
