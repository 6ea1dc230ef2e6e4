from supabase import create_client
from supabase.client import ClientOptions
import logging
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

logger = logging.getLogger(__name__)

# Base for the cache models, defined before anything imports models/
Base = declarative_base()


# --- Local cache database ---

def create_cache_engine(db_path):
    """Create the SQLite engine backing the offline content cache."""
    # Store writes run in worker threads, so the connection must not be
    # pinned to the thread that opened it.
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    return engine


def init_cache_schema(engine):
    """Create the cache tables if they do not exist yet."""
    import models  # noqa: F401  (registers CacheEntry on Base.metadata)
    Base.metadata.create_all(bind=engine)


def create_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@contextmanager
def session_scope(session_factory):
    """Provide a transactional scope around a series of SQLAlchemy operations.

    Errors are rolled back and re-raised; callers log them with their own context.
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# --- Supabase Client Logic ---

def create_supabase_client(supabase_url, supabase_key, timeout_seconds=7):
    """Build a Supabase client whose PostgREST and Functions calls share one timeout."""
    if not supabase_url or not supabase_key:
        raise ValueError("SUPABASE_URL or the Supabase API key not found")

    logger.info("Initializing Supabase client...")
    try:
        options = ClientOptions(
            postgrest_client_timeout=timeout_seconds,
            function_client_timeout=int(timeout_seconds),
        )
        client = create_client(supabase_url, supabase_key, options=options)
    except Exception as e:
        logger.error(f"Error initializing Supabase client: {str(e)}")
        raise

    logger.info("Successfully initialized Supabase client")
    return client
