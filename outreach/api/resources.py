from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type, Union

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, Field as PydField, ValidationError
from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from ..config import settings
from ..database import get_db
from ..filters import QueryFilter
from ..models.common import utcnow
from ..services.expansions import expand_rows
from ..services.query_builder import FilterError, build_select, coerce_value, resolve_column
from .registry import Resource, get_resource

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rest", tags=["rest"])


# -----------------------------
# Schemas
# -----------------------------

class SelectRequest(BaseModel):
    filter: Optional[QueryFilter] = None
    expand: List[str] = PydField(default_factory=list)


class DeleteWhere(BaseModel):
    """Bulk delete by equality. An empty `equals` is refused so a typo never wipes a table."""
    equals: Dict[str, Any] = PydField(..., min_length=1)


# -----------------------------
# Helpers
# -----------------------------

def _resource(name: str) -> Resource:
    res = get_resource(name)
    if res is None:
        raise HTTPException(status_code=404, detail=f"Unknown resource '{name}'")
    return res


def _writable(name: str) -> Resource:
    res = _resource(name)
    if not res.writable:
        raise HTTPException(status_code=405, detail=f"Resource '{name}' is read-only")
    return res


def _validate(schema: Optional[Type[BaseModel]], resource: str, payload: Any) -> BaseModel:
    if schema is None:
        raise HTTPException(status_code=405, detail=f"Operation not supported on '{resource}'")
    try:
        return schema.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=e.errors(include_url=False, include_context=False),
        ) from e


def _commit(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("Integrity error on commit: %s", e.orig)
        raise HTTPException(status_code=409, detail=f"Integrity error: {e.orig}") from e


def _get_row(db: Session, res: Resource, row_id: int) -> Any:
    obj = db.get(res.model, row_id)
    if not obj:
        raise HTTPException(status_code=404, detail=f"{res.name} row {row_id} not found")
    return obj


# -----------------------------
# Read
# -----------------------------

@router.post("/{resource}/select")
def select_rows(
    resource: str,
    payload: Optional[SelectRequest] = None,
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    res = _resource(resource)
    payload = payload or SelectRequest()

    try:
        stmt = build_select(res.source(), payload.filter, settings.select_max_limit)
        rows = [dict(r) for r in db.exec(stmt).mappings().all()]
        return expand_rows(db, rows, res.expansions, payload.expand)
    except FilterError as e:
        logger.info("Rejected select on %s: %s", resource, e)
        raise HTTPException(status_code=400, detail=str(e)) from e


# -----------------------------
# Write
# -----------------------------

@router.post("/{resource}/delete")
def delete_where(resource: str, payload: DeleteWhere, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Delete every row matching all `equals` pairs (join-table cleanup)."""
    res = _writable(resource)
    table = res.model.__table__

    stmt = sa_delete(table)
    try:
        for name, value in res.to_storage(payload.equals).items():
            column = resolve_column(table, name)
            if value is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(column == coerce_value(column, value))
    except FilterError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    result = db.exec(stmt)
    _commit(db)

    deleted = int(result.rowcount or 0)
    logger.info("Deleted %d %s row(s) where %s", deleted, resource, payload.equals)
    return {"ok": True, "deleted": deleted}


@router.post("/{resource}", status_code=201)
def insert_rows(
    resource: str,
    payload: Union[List[Dict[str, Any]], Dict[str, Any]] = Body(...),
    db: Session = Depends(get_db),
) -> Any:
    """Insert one row (object body) or several (array body); returns what was stored."""
    res = _writable(resource)
    many = isinstance(payload, list)
    items = payload if many else [payload]

    parsed = [_validate(res.create_schema, resource, item) for item in items]
    objs = [res.model(**res.to_storage(p.model_dump())) for p in parsed]

    db.add_all(objs)
    _commit(db)
    for obj in objs:
        db.refresh(obj)

    out = [res.to_public(obj.model_dump()) for obj in objs]
    logger.info("Inserted %d %s row(s)", len(out), resource)
    return out if many else out[0]


@router.patch("/{resource}/{row_id}")
def update_row(
    resource: str,
    row_id: int,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
) -> Any:
    res = _writable(resource)
    patch = _validate(res.patch_schema, resource, payload).model_dump(exclude_unset=True)
    obj = _get_row(db, res, row_id)

    for k, v in res.to_storage(patch).items():
        setattr(obj, k, v)
    if hasattr(obj, "updated_at"):
        obj.updated_at = utcnow()

    db.add(obj)
    _commit(db)
    db.refresh(obj)

    logger.info("Updated %s row %s (%s)", resource, row_id, ", ".join(sorted(patch)) or "no fields")
    return res.to_public(obj.model_dump())


@router.delete("/{resource}/{row_id}")
def delete_row(resource: str, row_id: int, db: Session = Depends(get_db)) -> Dict[str, Any]:
    res = _writable(resource)
    obj = _get_row(db, res, row_id)

    db.delete(obj)
    _commit(db)

    logger.info("Deleted %s row %s", resource, row_id)
    return {"ok": True, "id": row_id}
