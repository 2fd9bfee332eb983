import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple, Type

from fastapi import Body, Depends, FastAPI, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from craftsync.models.base import next_timestamp, normalize_timestamp, utc_now_iso
from craftsync_server.database import build_engine, init_db, session_dependency
from craftsync_server.models import (
    CLIENT_ONLY_FIELDS,
    CORE_FIELDS,
    CloudInventoryItem,
    CloudProject,
    RemoteRecord,
)

logger = logging.getLogger(__name__)

# --- ROUTE MAPPING ---
# Resource name in the URL -> remote table
MODELS_MAP = {
    "projects": CloudProject,
    "inventory_items": CloudInventoryItem,
}

MAX_EXISTS_IDS = 100


class WriteClock:
    """Strictly increasing stamps for server_updated_at."""

    def __init__(self):
        self._last: Optional[str] = None

    def next(self) -> str:
        self._last = next_timestamp(self._last)
        return self._last


def split_record(item: Dict[str, Any], owner_id: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Client payload -> (core columns, domain payload). Raises ValueError on bad timestamps."""
    updated_at = normalize_timestamp(item.get("updated_at"))
    if updated_at is None:
        raise ValueError("updated_at is required")
    core = {
        "id": str(item["id"]),
        "owner_id": owner_id,
        "created_at": normalize_timestamp(item.get("created_at")) or updated_at,
        "updated_at": updated_at,
        "deleted_at": normalize_timestamp(item.get("deleted_at")),
    }
    payload = {
        key: value
        for key, value in item.items()
        if key not in CORE_FIELDS and key not in CLIENT_ONLY_FIELDS
    }
    return core, payload


def create_app(engine: Optional[AsyncEngine] = None) -> FastAPI:
    engine = engine or build_engine()
    get_session = session_dependency(engine)
    clock = WriteClock()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db(engine)
        yield
        await engine.dispose()

    app = FastAPI(title="craftsync remote store", lifespan=lifespan)

    def resolve_model(resource_name: str) -> Type[RemoteRecord]:
        if resource_name not in MODELS_MAP:
            raise HTTPException(status_code=404, detail=f"Unknown resource '{resource_name}'")
        return MODELS_MAP[resource_name]

    async def current_owner(x_owner_id: Optional[str] = Header(default=None)) -> str:
        """Every query is restricted to the caller's own rows."""
        if not x_owner_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing owner")
        return x_owner_id

    @app.get("/")
    async def root():
        return {
            "status": "online",
            "resources": list(MODELS_MAP.keys()),
            "time": utc_now_iso(),
        }

    # --- PUSH ---
    @app.post("/sync/push/{resource_name}")
    async def push_generic(
        resource_name: str,
        payload: List[Dict[str, Any]],
        owner_id: str = Depends(current_owner),
        session: AsyncSession = Depends(get_session),
    ):
        """
        Upserts records keyed by id. Records carrying another owner, or whose id
        already belongs to another owner, are rejected individually. A record
        older than the stored copy is acknowledged without being written.
        """
        model = resolve_model(resource_name)
        processed_ids = []
        stale_ids = []
        rejected = {}

        try:
            for item in payload:
                item_id = item.get("id")
                if not item_id:
                    continue

                if item.get("owner_id") != owner_id:
                    rejected[item_id] = {"code": "forbidden", "detail": "record owner does not match caller"}
                    continue

                existing = await session.get(model, item_id)
                if existing is not None and existing.owner_id != owner_id:
                    rejected[item_id] = {"code": "forbidden", "detail": "id belongs to another owner"}
                    continue

                try:
                    core, data = split_record(item, owner_id)
                except ValueError as e:
                    rejected[item_id] = {"code": "invalid", "detail": str(e)}
                    continue

                if existing is None:
                    existing = model(**core, payload=data, server_updated_at=clock.next())
                elif core["updated_at"] < existing.updated_at:
                    # Older than what is stored: acknowledged, the next pull brings the newer copy
                    stale_ids.append(item_id)
                    processed_ids.append(item_id)
                    continue
                else:
                    for key, value in core.items():
                        setattr(existing, key, value)
                    existing.payload = data
                    existing.server_updated_at = clock.next()

                session.add(existing)
                processed_ids.append(item_id)

            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Push failed ({resource_name}): {e}")
            raise HTTPException(status_code=500, detail=str(e))

        if rejected:
            logger.info(f"Push {resource_name}: rejected {len(rejected)} record(s)")
        return {
            "processed_ids": processed_ids,
            "stale_ids": stale_ids,
            "rejected": rejected,
            "status": "success",
            "resource": resource_name,
        }

    # --- PULL ---
    @app.get("/sync/pull/{resource_name}")
    async def pull_generic(
        resource_name: str,
        since: Optional[str] = None,
        owner_id: str = Depends(current_owner),
        session: AsyncSession = Depends(get_session),
    ):
        """
        Rows of the caller, all of them or those written at/after `since`.
        `cursor` is the last server write stamp returned, for the next call.
        """
        model = resolve_model(resource_name)

        statement = select(model).where(model.owner_id == owner_id)
        if since:
            try:
                since_stamp = normalize_timestamp(since)
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Invalid since value '{since}'")
            # >= so a row stamped in the same microsecond as the cursor is not missed
            statement = statement.where(model.server_updated_at >= since_stamp)
        statement = statement.order_by(model.server_updated_at)

        changes = (await session.exec(statement)).all()
        cursor = changes[-1].server_updated_at if changes else since

        return {
            "resource": resource_name,
            "changes": [record.to_wire() for record in changes],
            "cursor": cursor,
            "current_server_time": utc_now_iso(),
        }

    @app.get("/sync/ids/{resource_name}")
    async def list_ids(
        resource_name: str,
        owner_id: str = Depends(current_owner),
        session: AsyncSession = Depends(get_session),
    ):
        model = resolve_model(resource_name)
        ids = (await session.exec(select(model.id).where(model.owner_id == owner_id))).all()
        return {"resource": resource_name, "ids": list(ids)}

    @app.post("/sync/exists/{resource_name}")
    async def existing_ids(
        resource_name: str,
        ids: List[str] = Body(...),
        session: AsyncSession = Depends(get_session),
    ):
        """Which of `ids` exist under any owner. Only ids are disclosed."""
        model = resolve_model(resource_name)
        if len(ids) > MAX_EXISTS_IDS:
            raise HTTPException(status_code=400, detail=f"At most {MAX_EXISTS_IDS} ids per probe")
        if not ids:
            return {"resource": resource_name, "ids": []}
        found = (await session.exec(select(model.id).where(model.id.in_(ids)))).all()
        return {"resource": resource_name, "ids": list(found)}

    return app


app = create_app()
