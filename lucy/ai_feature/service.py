"""Question assistant.

Flow for one question:
1. Detect language
2. Classify intent
3. Generate SQL when the intent needs data
4. Validate SQL safety
5. Execute read-only query
6. Compose final answer
"""

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lucy.core import schemas
from lucy.core.config import settings
from lucy.core.errors import PolicyError, RetrievalError
from lucy.core.pipeline import gemini, prompts, sql_guard
from lucy.core.security import RequestContext

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"

_LANGUAGE_PATTERN = re.compile(r'\{[^}]*"language"\s*:\s*"([^"]+)"[^}]*\}')
_INTENT_PATTERN = re.compile(r'\{[^}]*"intent"\s*:\s*"([^"]+)"[^}]*\}')


async def detect_language(llm: gemini.GeminiClient, question: str) -> str:
    response = await llm.generate(
        prompts.build_language_prompt(question),
        temperature=gemini.FACTUAL_TEMPERATURE,
        max_output_tokens=40,
    )
    match = _LANGUAGE_PATTERN.search(response)
    return match.group(1).lower() if match else DEFAULT_LANGUAGE


async def classify_intent(llm: gemini.GeminiClient, question: str) -> schemas.Intent:
    response = await llm.generate(
        prompts.build_intent_prompt(question),
        temperature=gemini.FACTUAL_TEMPERATURE,
        max_output_tokens=50,
    )
    match = _INTENT_PATTERN.search(response)
    if match:
        try:
            return schemas.Intent(match.group(1))
        except ValueError:
            logger.warning(f"Unknown intent from classifier: {match.group(1)}")
    return schemas.Intent.GENERAL_CONVERSATION


async def generate_sql(llm: gemini.GeminiClient, question: str) -> Optional[str]:
    """A safe SELECT for the question, or None."""
    response = await llm.generate(
        prompts.build_sql_prompt(question),
        temperature=gemini.FACTUAL_TEMPERATURE,
        max_output_tokens=2048,
    )
    query = sql_guard.clean_generated_sql(response)
    if query is None:
        return None

    safe, reason = sql_guard.check_sql(query)
    if not safe:
        logger.warning(f"Generated SQL rejected ({reason}): {query}")
        return None
    return query


async def execute_read_query(db: AsyncSession, query: str) -> List[Dict[str, Any]]:
    """
    Run a read-only statement and return its rows as dicts.

    Raises:
        PolicyError: the statement fails the read-only check
        RetrievalError: the database refused or could not be reached
    """
    safe, reason = sql_guard.check_sql(query)
    if not safe:
        raise PolicyError(f"Unsafe query detected: {reason}")

    try:
        result = await db.execute(text(query))
        return [dict(row) for row in result.mappings().all()]
    except SQLAlchemyError as error:
        logger.error(f"Read query failed: {error}")
        raise RetrievalError("Could not retrieve data for the report.") from error


# =========================
# Intent handlers
# =========================
def refuse_modification(language: str) -> str:
    if language == "es":
        return (
            "Lo siento, no tengo permisos para realizar cambios en la base de datos. "
            f"Para este tipo de solicitudes, por favor contacta a: {settings.SUPPORT_CONTACT}"
        )
    return (
        "I'm sorry, I don't have permission to make changes to the database. "
        f"For these types of requests, please contact: {settings.SUPPORT_CONTACT}"
    )


async def answer_general(llm: gemini.GeminiClient, question: str, language: str) -> str:
    return await llm.generate(
        prompts.build_general_prompt(question, language),
        temperature=gemini.ANSWER_TEMPERATURE,
        max_output_tokens=1024,
    )


async def answer_conversation(
    llm: gemini.GeminiClient, question: str, language: str, user_name: str
) -> str:
    return await llm.generate(
        prompts.build_conversation_prompt(question, language, user_name),
        temperature=gemini.ANSWER_TEMPERATURE,
        max_output_tokens=1024,
    )


async def answer_from_database(
    llm: gemini.GeminiClient, db: AsyncSession, question: str, language: str
) -> str:
    query = await generate_sql(llm, question)
    if query is None:
        return await answer_general(llm, question, language)

    try:
        rows = await execute_read_query(db, query)
    except RetrievalError:
        return await answer_general(llm, question, language)

    data_json = json.dumps(rows, default=str, ensure_ascii=False)
    return await llm.generate(
        prompts.build_data_answer_prompt(question, data_json, language),
        temperature=gemini.ANSWER_TEMPERATURE,
        max_output_tokens=1024,
    )


async def answer_question(
    context: RequestContext,
    question: str,
    db: AsyncSession,
    llm: gemini.GeminiClient,
    report_url_for: Callable[[str], str],
) -> schemas.AssistantAnswer:
    """
    Answer one question end to end.

    Args:
        context: Caller identity (its name is used in small talk)
        question: The user's question, already stripped
        db: Database session for read-only queries
        llm: Gemini client
        report_url_for: Builds the download URL for a report query
    """
    language = await detect_language(llm, question)
    intent = await classify_intent(llm, question)
    logger.info(f"[User {context.user_id}] question classified as {intent.value} ({language})")

    report_url = None

    if intent is schemas.Intent.DATA_MODIFICATION:
        answer = refuse_modification(language)

    elif intent is schemas.Intent.REPORT_GENERATION:
        query = await generate_sql(llm, question)
        if query is None:
            answer = (
                "No pude generar un reporte válido para esa solicitud. "
                "Por favor, intenta reformular la pregunta."
                if language == "es"
                else "I couldn't generate a valid report for that request. Please try rephrasing."
            )
        else:
            report_url = report_url_for(query)
            answer = (
                "He preparado el reporte que solicitaste. Puedes descargarlo aquí:"
                if language == "es"
                else "I have prepared the report you requested. You can download it here:"
            )

    elif intent is schemas.Intent.DATABASE_QUERY:
        answer = await answer_from_database(llm, db, question, language)

    elif intent is schemas.Intent.GENERAL_KNOWLEDGE:
        answer = await answer_general(llm, question, language)

    else:
        answer = await answer_conversation(llm, question, language, context.name)

    return schemas.AssistantAnswer(
        answer=answer, language=language, intent=intent, report_url=report_url
    )
