from typing import Annotated, Any, Dict

from fastapi import APIRouter, Body, Depends, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from lucy.core import schemas
from lucy.core.database import get_db
from lucy.core.errors import InputError
from lucy.core.pipeline import orchestrator
from lucy.core.pipeline.gemini import GeminiClient, get_gemini_client
from lucy.core.pipeline.powerbi import PowerBIClient, get_powerbi_client
from lucy.core.security import authorized_dep, context_dep

router = APIRouter(tags=["Dashboards"])

db_dep = Annotated[AsyncSession, Depends(get_db)]
llm_dep = Annotated[GeminiClient, Depends(get_gemini_client)]
publisher_dep = Annotated[PowerBIClient, Depends(get_powerbi_client)]


def _report_response(report: Dict[str, Any]) -> JSONResponse:
    status_code = report.pop("http_status", status.HTTP_200_OK)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(report))


@router.post("/dashboards/generate")
async def generate_dashboard(
    payload: schemas.DashboardRequest, context: authorized_dep, db: db_dep, llm: llm_dep
):
    """
    Diagnostic run: fetch -> prompt -> Gemini -> extract.
    An answer without usable structure comes back as a warning.
    """
    report = await orchestrator.run_dashboard_pipeline(
        context, payload.request, db, llm, publish=False, history=payload.history
    )
    return _report_response(report)


@router.post("/dashboards/publish")
async def publish_dashboard(
    payload: schemas.DashboardRequest,
    context: authorized_dep,
    db: db_dep,
    llm: llm_dep,
    publisher: publisher_dep,
):
    """Full run, the extracted dashboard is pushed to Power BI."""
    report = await orchestrator.run_dashboard_pipeline(
        context,
        payload.request,
        db,
        llm,
        publisher=publisher,
        publish=True,
        dataset_id=payload.dataset_id,
        history=payload.history,
    )
    return _report_response(report)


@router.post("/powerbi")
async def powerbi_action(
    context: context_dep,
    publisher: publisher_dep,
    body: Dict[str, Any] = Body(...),
):
    """Create, update or read a Power BI dataset from an explicit payload."""
    try:
        publish_request = schemas.publish_request_adapter.validate_python(body)
    except ValidationError as error:
        raise InputError(f"Invalid Power BI request: {error.errors()[0]['msg']}")

    dataset = await publisher.publish(publish_request)
    return {"status": "success", "data": dataset.model_dump()}
