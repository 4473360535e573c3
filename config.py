import logging
import os
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class Settings:
    def __init__(
        self,
        database_url: str,
        session_secret: str,
        admin_setup_key: Optional[str],
        session_max_age: int,
    ) -> None:
        self.database_url = database_url
        self.session_secret = session_secret
        self.admin_setup_key = admin_setup_key
        self.session_max_age = session_max_age


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    session_secret = os.getenv("BUDGET_SESSION_SECRET")
    if not session_secret:
        logger.warning(
            "BUDGET_SESSION_SECRET is not set; sessions will not survive a restart"
        )
        session_secret = secrets.token_hex(32)
    admin_setup_key = os.getenv("BUDGET_ADMIN_SETUP_KEY") or None
    session_max_age = int(os.getenv("BUDGET_SESSION_MAX_AGE", "86400"))
    return Settings(
        database_url=database_url,
        session_secret=session_secret,
        admin_setup_key=admin_setup_key,
        session_max_age=session_max_age,
    )
