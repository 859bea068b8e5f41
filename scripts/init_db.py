import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from volsync.config import settings  # noqa: E402
from volsync.database.connection import engine  # noqa: E402
from volsync.models.base import Base  # noqa: E402
from volsync.models import audit, volumetrica  # noqa: E402,F401


def init_db():
    """Create the ledger, projection and audit tables."""
    try:
        Base.metadata.create_all(bind=engine)
        print(f"Database initialized: {settings.DATABASE_URL.split('@')[-1]}")
    except Exception as e:
        print(f"Database initialization failed: {str(e)}")
        raise


if __name__ == "__main__":
    init_db()
