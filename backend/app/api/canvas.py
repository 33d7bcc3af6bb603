"""/api/canvas/{canvas_id}/* — agent turns, scene state, triggers and drags for one canvas."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path

from app.dependencies import get_capabilities, get_chat_model, get_image_generator, get_registry
from app.models.actions import action_to_wire
from app.models.capability import ExecutionResult
from app.models.requests import DragRequest, ExecuteRequest, SceneRestoreRequest, TriggerRequest
from app.models.responses import DragResponse, ExecuteResponse, SceneResponse
from app.models.scene import SceneSnapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/canvas/{canvas_id}")

CanvasId = Annotated[str, Path(pattern=r"^[A-Za-z0-9_-]{1,128}$")]


def _scene_response(session) -> SceneResponse:
    snapshot = session.store.snapshot()
    return SceneResponse(
        elements=snapshot.elements,
        background=snapshot.background,
        capabilities=snapshot.capabilities,
        generating=sorted(session.store.generating),
        background_generating=session.store.background_generating,
        saved_at=snapshot.saved_at,
    )


@router.post("/execute", response_model=ExecuteResponse)
async def execute(
    canvas_id: CanvasId,
    req: ExecuteRequest,
    registry=Depends(get_registry),
    capability_store=Depends(get_capabilities),
    image_generator=Depends(get_image_generator),
    model=Depends(get_chat_model),
) -> ExecuteResponse:
    from app.agent.handlers import ToolContext
    from app.agent.orchestrator import run_scene_turn

    if model is None:
        return ExecuteResponse(response="[LLM not configured — set ANTHROPIC_API_KEY in .env]")

    session = registry.get(canvas_id)
    session.ensure_ticker()
    ctx = ToolContext(capability_store=capability_store, image_generator=image_generator)
    history = [turn.model_dump() for turn in req.history]

    response, actions, update = await run_scene_turn(session, req.message, history, model=model, ctx=ctx)

    out = ExecuteResponse(response=response, actions=[action_to_wire(a) for a in actions])
    if update is not None:
        out.executions = update.executions
        out.room = update.room
        out.navigate = update.navigate
    return out


@router.get("/scene", response_model=SceneResponse)
async def get_scene(canvas_id: CanvasId, registry=Depends(get_registry)) -> SceneResponse:
    return _scene_response(registry.get(canvas_id))


@router.put("/scene", response_model=SceneResponse)
async def put_scene(
    canvas_id: CanvasId,
    req: SceneRestoreRequest,
    registry=Depends(get_registry),
) -> SceneResponse:
    session = registry.get(canvas_id)
    session.store.restore(
        SceneSnapshot(elements=req.elements, background=req.background, capabilities=req.capabilities)
    )
    return _scene_response(session)


@router.delete("/scene", response_model=SceneResponse)
async def reset_scene(canvas_id: CanvasId, registry=Depends(get_registry)) -> SceneResponse:
    session = registry.get(canvas_id)
    session.reset()
    return _scene_response(session)


@router.post("/trigger", response_model=ExecutionResult)
async def trigger(
    canvas_id: CanvasId,
    req: TriggerRequest,
    registry=Depends(get_registry),
) -> ExecutionResult:
    session = registry.get(canvas_id)
    session.ensure_ticker()
    return session.trigger(req.element_id, req.trigger, req.event)


@router.post("/drag", response_model=DragResponse)
async def drag(
    canvas_id: CanvasId,
    req: DragRequest,
    registry=Depends(get_registry),
) -> DragResponse:
    session = registry.get(canvas_id)
    result = session.drag(req.element_id, req.x, req.y, req.phase)
    return DragResponse(element=session.store.get_element(req.element_id), result=result)
