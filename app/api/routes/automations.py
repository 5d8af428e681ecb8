# app/api/routes/automations.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.automations.errors import (
    AutomationError,
    CallerError,
    ConcurrencyConflict,
    NotFoundError,
    StoreError,
    UnauthorizedError,
    ValidationError,
)
from app.automations.runtime import ensure_automation_started
from app.automations.service import AutomationService
from app.automations import triggers as trigger_catalog
from app.core.auth import current_identity

log = logging.getLogger("web")

router = APIRouter(prefix="/api/automations", tags=["automations"])


def get_service() -> AutomationService:
    return ensure_automation_started().service


# ─────────────────────────────────────────────────────────────────────────────
# error mapping
# ─────────────────────────────────────────────────────────────────────────────

def _status_for(exc: AutomationError) -> int:
    if isinstance(exc, UnauthorizedError):
        return 403
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConcurrencyConflict):
        return 409
    if isinstance(exc, CallerError):
        return 400
    if isinstance(exc, StoreError):
        return 503
    return 500


def _error_response(request: Request, exc: AutomationError) -> JSONResponse:
    status = _status_for(exc)
    body: Dict[str, Any] = {"detail": str(exc)}
    if isinstance(exc, ValidationError) and exc.problems:
        body["problems"] = exc.problems
    if isinstance(exc, StoreError):
        body["retryable"] = True
    if status >= 500:
        log.error("%s %s → %d: %s", request.method, request.url.path, status, exc)
    return JSONResponse(status_code=status, content=body)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AutomationError, _error_response)


# ─────────────────────────────────────────────────────────────────────────────
# DTO
# ─────────────────────────────────────────────────────────────────────────────

class RuleCreateDTO(BaseModel):
    name: str
    description: Optional[str] = None
    conditions: Optional[Dict[str, Any]] = None
    execution_order: Optional[int] = None
    enabled: bool = True


class RuleUpdateDTO(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    conditions: Optional[Dict[str, Any]] = None
    execution_order: Optional[int] = None
    enabled: Optional[bool] = None
    expected_version: Optional[int] = None


class RuleOrderDTO(BaseModel):
    id: str
    order: int
    version: Optional[int] = None


class ActionCreateDTO(BaseModel):
    name: str
    type: str
    configuration: Dict[str, Any]
    execution_order: Optional[int] = None
    enabled: bool = True


class ActionUpdateDTO(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    configuration: Optional[Dict[str, Any]] = None
    execution_order: Optional[int] = None
    enabled: Optional[bool] = None
    expected_version: Optional[int] = None


class DryRunDTO(BaseModel):
    record_id: Optional[str] = None


def _split_version(dto: BaseModel) -> tuple:
    changes = dto.model_dump(exclude_unset=True)
    expected = changes.pop("expected_version", None)
    return changes, expected


# ─────────────────────────────────────────────────────────────────────────────
# triggers
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/triggers")
def list_triggers(
    identity: Optional[str] = Depends(current_identity),
    svc: AutomationService = Depends(get_service),
) -> List[Dict[str, Any]]:
    return svc.list_triggers(identity)


@router.get("/triggers/{trigger_name}")
def get_trigger(
    trigger_name: str,
    identity: Optional[str] = Depends(current_identity),
    svc: AutomationService = Depends(get_service),
) -> Dict[str, Any]:
    trigger = svc.get_trigger(identity, trigger_name)
    out = trigger.to_dict(full=True)
    for p in out["parameters"]:
        p["operators"] = trigger_catalog.operators_for_type(p["type"])
    return out


@router.get("/operators")
def list_operators(
    type: str = Query("string"),
    identity: Optional[str] = Depends(current_identity),
    svc: AutomationService = Depends(get_service),
) -> Dict[str, Any]:
    return {"type": type, "operators": svc.operators_for_type(identity, type)}


# ─────────────────────────────────────────────────────────────────────────────
# rules
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/triggers/{trigger_name}/rules")
def list_rules(
    trigger_name: str,
    identity: Optional[str] = Depends(current_identity),
    svc: AutomationService = Depends(get_service),
) -> List[Dict[str, Any]]:
    return [r.to_dict() for r in svc.list_rules(identity, trigger_name)]


@router.post("/triggers/{trigger_name}/rules", status_code=201)
def create_rule(
    trigger_name: str,
    body: RuleCreateDTO,
    identity: Optional[str] = Depends(current_identity),
    svc: AutomationService = Depends(get_service),
) -> Dict[str, Any]:
    rule = svc.create_rule(
        identity,
        trigger_name,
        name=body.name,
        description=body.description,
        conditions=body.conditions,
        execution_order=body.execution_order,
        enabled=body.enabled,
    )
    return rule.to_dict()


@router.patch("/rules/{rule_id}")
def update_rule(
    rule_id: str,
    body: RuleUpdateDTO,
    identity: Optional[str] = Depends(current_identity),
    svc: AutomationService = Depends(get_service),
) -> Dict[str, Any]:
    changes, expected = _split_version(body)
    return svc.update_rule(identity, rule_id, changes, expected_version=expected).to_dict()


@router.delete("/rules/{rule_id}")
def delete_rule(
    rule_id: str,
    identity: Optional[str] = Depends(current_identity),
    svc: AutomationService = Depends(get_service),
) -> Dict[str, Any]:
    svc.delete_rule(identity, rule_id)
    return {"ok": True}


@router.put("/triggers/{trigger_name}/rules/order")
def reorder_rules(
    trigger_name: str,
    body: List[RuleOrderDTO],
    identity: Optional[str] = Depends(current_identity),
    svc: AutomationService = Depends(get_service),
) -> List[Dict[str, Any]]:
    orders = [item.model_dump() for item in body]
    return [r.to_dict() for r in svc.reorder_rules(identity, trigger_name, orders)]


# ─────────────────────────────────────────────────────────────────────────────
# actions
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/rules/{rule_id}/actions")
def list_actions(
    rule_id: str,
    identity: Optional[str] = Depends(current_identity),
    svc: AutomationService = Depends(get_service),
) -> List[Dict[str, Any]]:
    return [a.to_dict() for a in svc.list_actions(identity, rule_id)]


@router.post("/rules/{rule_id}/actions", status_code=201)
def create_action(
    rule_id: str,
    body: ActionCreateDTO,
    identity: Optional[str] = Depends(current_identity),
    svc: AutomationService = Depends(get_service),
) -> Dict[str, Any]:
    action = svc.create_action(
        identity,
        rule_id,
        name=body.name,
        type=body.type,
        configuration=body.configuration,
        execution_order=body.execution_order,
        enabled=body.enabled,
    )
    return action.to_dict()


@router.patch("/actions/{action_id}")
def update_action(
    action_id: str,
    body: ActionUpdateDTO,
    identity: Optional[str] = Depends(current_identity),
    svc: AutomationService = Depends(get_service),
) -> Dict[str, Any]:
    changes, expected = _split_version(body)
    return svc.update_action(identity, action_id, changes, expected_version=expected).to_dict()


@router.delete("/actions/{action_id}")
def delete_action(
    action_id: str,
    identity: Optional[str] = Depends(current_identity),
    svc: AutomationService = Depends(get_service),
) -> Dict[str, Any]:
    svc.delete_action(identity, action_id)
    return {"ok": True}


# ─────────────────────────────────────────────────────────────────────────────
# execution log + test runs
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/logs")
def query_logs(
    trigger_name: Optional[str] = None,
    rule_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    identity: Optional[str] = Depends(current_identity),
    svc: AutomationService = Depends(get_service),
) -> List[Dict[str, Any]]:
    entries = svc.query_logs(
        identity, trigger_name=trigger_name, rule_id=rule_id, status=status, limit=limit
    )
    return [e.to_dict() for e in entries]


@router.post("/triggers/{trigger_name}/test")
def dry_run_trigger(
    trigger_name: str,
    body: Optional[DryRunDTO] = Body(default=None),
    identity: Optional[str] = Depends(current_identity),
    svc: AutomationService = Depends(get_service),
) -> Dict[str, Any]:
    record_id = body.record_id if body is not None else None
    return svc.test_trigger(identity, trigger_name, record_id).to_dict()
