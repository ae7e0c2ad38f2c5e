import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from lucy.ai_feature import service
from lucy.core import schemas
from lucy.core.database import get_db
from lucy.core.errors import InputError, LucyError, PolicyError
from lucy.core.pipeline import report, sql_guard
from lucy.core.pipeline.gemini import GeminiClient, get_gemini_client
from lucy.core.security import authorized_dep

router = APIRouter(prefix="/lucy", tags=["Lucy"])

db_dep = Annotated[AsyncSession, Depends(get_db)]
llm_dep = Annotated[GeminiClient, Depends(get_gemini_client)]


@router.post("/ask")
async def ask(
    payload: schemas.QuestionRequest,
    request: Request,
    context: authorized_dep,
    db: db_dep,
    llm: llm_dep,
):
    """Answer a free-text question (classification, data lookup or small talk)."""

    def report_url_for(query: str) -> str:
        return str(request.url_for("generate_report").include_query_params(query=query))

    try:
        return await service.answer_question(
            context, payload.question, db, llm, report_url_for
        )
    except LucyError as error:
        logging.error(f"LUCY ERROR for user {context.user_id}: {error.message}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "status": "error",
                "message": error.message,
                "answer": "I apologize, but I encountered an issue processing your request. "
                "Please try again.",
            },
        )


@router.get("/report", name="generate_report")
async def generate_report(context: authorized_dep, db: db_dep, query: Optional[str] = None):
    """Download the rows of a read-only query as an Excel file."""
    if not query or not query.strip():
        raise InputError("No query provided.")

    safe, reason = sql_guard.check_sql(query)
    if not safe:
        logging.warning(f"Rejected report query from user {context.user_id} ({reason})")
        raise PolicyError("Unsafe query detected.")

    rows = await service.execute_read_query(db, query)
    content = report.build_workbook(rows)
    return Response(
        content=content,
        media_type=report.XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{report.report_filename()}"',
            "Cache-Control": "max-age=0",
        },
    )
