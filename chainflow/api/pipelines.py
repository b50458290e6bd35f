"""Pipeline execution endpoints."""

import json
import logging
import uuid
from typing import AsyncIterator, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError as SchemaError

from .. import config
from ..credentials import CredentialStore, StaticCredentialStore
from ..dependencies import get_credentials, get_gateway
from ..errors import CycleError, PipelineValidationError, ValidationError
from ..gateway import ChatGateway, parse_json_body
from ..pipeline import PipelineExecutor, detect_cycles, topological_layers, validate_pipeline
from ..pipeline.schema import PipelineDocument, PipelineRunRequest
from ..providers.base import Provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pipelines", tags=["pipelines"])

# run_id -> executor of a run that is still streaming
_active_runs: Dict[str, PipelineExecutor] = {}


async def _read_document(request: Request, model):
    try:
        data = parse_json_body(await request.body(), config.MAX_PIPELINE_BODY_BYTES)
        return model.model_validate(data)
    except ValidationError as e:
        raise HTTPException(status_code=e.status, detail=e.message)
    except SchemaError as e:
        raise HTTPException(status_code=422, detail=json.loads(e.json()))


def _credentials_for(body: PipelineRunRequest, fallback: CredentialStore) -> CredentialStore:
    if not body.api_keys:
        return fallback
    endpoints = {p: body.base_urls.get(p) or fallback.get_endpoint(p) for p in Provider}
    return StaticCredentialStore(body.api_keys, {p: u for p, u in endpoints.items() if u})


@router.post("/plan")
async def plan_pipeline(request: Request):
    """Return the execution layers of a pipeline, or the nodes on a cycle. No network calls."""
    document = await _read_document(request, PipelineDocument)
    pipeline = document.to_pipeline()

    cycles = detect_cycles(pipeline.nodes, pipeline.edges)
    if cycles:
        return {"valid": False, "cycle": sorted(cycles), "layers": []}
    try:
        validate_pipeline(pipeline)
    except PipelineValidationError as e:
        return JSONResponse({"valid": False, "error": str(e), "layers": []}, status_code=400)
    return {"valid": True, "layers": topological_layers(pipeline.nodes, pipeline.edges)}


@router.post("/run")
async def run_pipeline(
    request: Request,
    gateway: ChatGateway = Depends(get_gateway),
    credentials: CredentialStore = Depends(get_credentials),
):
    """
    Execute a pipeline, streaming run events as server-sent events.

    The response carries an `X-Run-Id` header; POST /api/pipelines/{run_id}/cancel
    stops the run.
    """
    body = await _read_document(request, PipelineRunRequest)
    pipeline = body.to_pipeline()

    # Structural problems fail fast with a status; cycles are reported in-stream
    try:
        validate_pipeline(pipeline)
    except CycleError:
        pass
    except PipelineValidationError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    executor = PipelineExecutor(
        gateway,
        _credentials_for(body, credentials),
        concurrency=body.concurrency or config.PIPELINE_CONCURRENCY,
    )
    run_id = uuid.uuid4().hex

    async def event_generator() -> AsyncIterator[str]:
        # Registered only once streaming starts, so a client that never reads leaves no entry
        _active_runs[run_id] = executor
        try:
            async for event in executor.stream(pipeline, body.user_input):
                yield event.to_sse()
        except Exception as e:
            logger.error(f"✗ Pipeline run {run_id} failed: {e}", exc_info=True)
            yield f"data: {json.dumps({'type': 'error', 'message': str(e)})}\n\n"
        finally:
            _active_runs.pop(run_id, None)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Run-Id": run_id,
        },
    )


@router.post("/{run_id}/cancel")
async def cancel_run(run_id: str):
    executor = _active_runs.get(run_id)
    if executor is None:
        raise HTTPException(status_code=404, detail=f"No active run {run_id}")
    return {"cancelled": executor.cancel()}
