"""GET/PUT /api/config - Gateway settings storage."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..config import settings
from ..models.database import get_db
from ..models.gateway_config import GatewayConfigModel
from ..schemas.config import ConfigItem, ConfigUpdate
from ..services.gateway import GatewayService

logger = logging.getLogger(__name__)
router = APIRouter()

# Default config items derived from application settings.
# These are shown when the DB has no saved value for a key.
_DEFAULTS: dict[str, object] = {
    "gateway_host": settings.gateway_host,
    "gateway_port": settings.gateway_port,
}

# Keys whose change requires a new gateway client
_GATEWAY_KEYS = {"gateway_host", "gateway_port"}

# Set by main.py during startup
_service: GatewayService | None = None


def set_service(service: GatewayService | None) -> None:
    global _service
    _service = service


def _coerce_value(raw: str) -> object:
    """Try to coerce a stored string back to bool/int/float."""
    if raw.lower() in ("true", "false"):
        return raw.lower() == "true"
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        pass
    return raw


def get_effective_config(db: Session) -> dict[str, object]:
    """Return merged config dict: DB overrides take priority over defaults."""
    saved = {item.key: _coerce_value(item.value) for item in db.query(GatewayConfigModel).all()}
    return {key: saved.get(key, default) for key, default in _DEFAULTS.items()}


def get_gateway_address(db: Session) -> tuple[str, int]:
    """Return (host, port) from the effective config; empty/0 when unset."""
    cfg = get_effective_config(db)
    host = str(cfg.get("gateway_host") or "")
    try:
        port = int(cfg.get("gateway_port") or 0)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid gateway_port %r", cfg.get("gateway_port"))
        port = 0
    return host, port


@router.get("/config", response_model=list[ConfigItem])
def get_config(db: Session = Depends(get_db)):
    """Return all configuration key-value pairs, with defaults for unsaved keys."""
    cfg = get_effective_config(db)
    return [{"key": key, "value": value} for key, value in cfg.items()]


def _save_updates(db: Session, updates: list[ConfigUpdate]) -> tuple[tuple[str, int], tuple[str, int]]:
    """Upsert config rows. Returns the gateway address before and after."""
    before = get_gateway_address(db)
    for update in updates:
        # Python's str(True) produces "True"; normalize bools to lowercase
        val = str(update.value).lower() if isinstance(update.value, bool) else str(update.value)
        existing = db.query(GatewayConfigModel).filter_by(key=update.key).first()
        if existing:
            existing.value = val
            existing.updated_at = datetime.now(timezone.utc)
        else:
            db.add(GatewayConfigModel(
                key=update.key,
                value=val,
                updated_at=datetime.now(timezone.utc),
            ))
    db.commit()
    return before, get_gateway_address(db)


@router.put("/config", response_model=list[ConfigItem])
async def update_config(updates: list[ConfigUpdate], db: Session = Depends(get_db)):
    """Update configuration values; a host/port change reconnects the gateway."""
    # SQLite calls run in the threadpool, not on the gateway client's loop
    before, after = await run_in_threadpool(_save_updates, db, updates)
    if _service is not None and after != before and any(u.key in _GATEWAY_KEYS for u in updates):
        await _service.async_reconfigure(*after)

    cfg = await run_in_threadpool(get_effective_config, db)
    return [{"key": key, "value": value} for key, value in cfg.items()]
