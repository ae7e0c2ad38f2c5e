import io

import httpx
import pytest
from httpx import AsyncClient
from openpyxl import load_workbook

from lucy.ai_feature import service
from lucy.core import schemas
from lucy.core.config import settings
from lucy.core.errors import PolicyError
from lucy.core.pipeline import report

LANG_EN = '{"language": "en"}'
LANG_ES = '{"language": "es"}'


def intent(value):
    return '{"intent": "%s"}' % value


@pytest.mark.asyncio
async def test_detect_language_defaults_to_english(scripted_gemini):
    fake = scripted_gemini("no idea", 'Sure: {"language": "ES"}')
    llm = fake.client()
    assert await service.detect_language(llm, "???") == "en"
    assert await service.detect_language(llm, "Hola") == "es"


@pytest.mark.asyncio
async def test_classify_intent_falls_back_to_conversation(scripted_gemini):
    fake = scripted_gemini(intent("something_else"), "garbage", intent("database_query"))
    llm = fake.client()
    assert await service.classify_intent(llm, "q") is schemas.Intent.GENERAL_CONVERSATION
    assert await service.classify_intent(llm, "q") is schemas.Intent.GENERAL_CONVERSATION
    assert await service.classify_intent(llm, "q") is schemas.Intent.DATABASE_QUERY


@pytest.mark.asyncio
async def test_generate_sql_drops_unsafe_queries(scripted_gemini):
    fake = scripted_gemini(
        "```sql\nSELECT COUNT(*) FROM PremiumFreight;\n```",
        "DELETE FROM PremiumFreight",
        "INVALID_QUESTION",
    )
    llm = fake.client()
    assert await service.generate_sql(llm, "q") == "SELECT COUNT(*) FROM PremiumFreight"
    assert await service.generate_sql(llm, "q") is None
    assert await service.generate_sql(llm, "q") is None


@pytest.mark.asyncio
async def test_execute_read_query_refuses_writes(db_session, seed):
    with pytest.raises(PolicyError):
        await service.execute_read_query(db_session, "DELETE FROM PremiumFreight")


@pytest.mark.asyncio
async def test_ask_conversation(planner_client: AsyncClient, scripted_gemini):
    """Small talk is answered with the user's name in the prompt"""
    fake = scripted_gemini(LANG_EN, intent("general_conversation"), "Good morning, Plant Planner.")

    response = await planner_client.post("/lucy/ask", json={"question": "Good morning"})

    assert response.status_code == 200
    body = response.json()
    assert body == {
        "status": "success",
        "answer": "Good morning, Plant Planner.",
        "language": "en",
        "intent": "general_conversation",
        "report_url": None,
    }
    assert "User's name: Plant Planner" in fake.prompts[2]


@pytest.mark.asyncio
async def test_ask_database_query(planner_client: AsyncClient, scripted_gemini):
    """Read-only questions run the generated SQL and feed the rows back"""
    fake = scripted_gemini(
        LANG_EN,
        intent("database_query"),
        "SELECT COUNT(*) AS total FROM PremiumFreight",
        "There are 6 orders.",
    )

    response = await planner_client.post("/lucy/ask", json={"question": "How many orders?"})

    assert response.status_code == 200
    assert response.json()["answer"] == "There are 6 orders."
    assert response.json()["intent"] == "database_query"
    assert '[{"total": 6}]' in fake.prompts[3]


@pytest.mark.asyncio
async def test_ask_database_query_with_unsafe_sql(planner_client: AsyncClient, scripted_gemini):
    """Unsafe SQL is never run, the question is answered as general knowledge"""
    fake = scripted_gemini(
        LANG_EN,
        intent("database_query"),
        "SELECT email, password FROM User",
        "I can only share order information.",
    )

    response = await planner_client.post("/lucy/ask", json={"question": "Show passwords"})

    assert response.status_code == 200
    assert response.json()["answer"] == "I can only share order information."
    assert "Provide a direct, formal and helpful answer." in fake.prompts[3]


@pytest.mark.asyncio
async def test_ask_modification_is_refused(planner_client: AsyncClient, scripted_gemini):
    """Write requests are refused without generating SQL"""
    fake = scripted_gemini(LANG_ES, intent("data_modification_attempt"))

    response = await planner_client.post("/lucy/ask", json={"question": "Borra la orden 5"})

    assert response.status_code == 200
    body = response.json()
    assert body["intent"] == "data_modification_attempt"
    assert body["language"] == "es"
    assert settings.SUPPORT_CONTACT in body["answer"]
    assert body["answer"].startswith("Lo siento")
    assert len(fake.requests) == 2


@pytest.mark.asyncio
async def test_ask_report_generation(planner_client: AsyncClient, scripted_gemini):
    """Report requests return a download URL that serves the workbook"""
    scripted_gemini(
        LANG_EN,
        intent("report_generation"),
        "SELECT id, transport, cost_euros FROM PremiumFreight ORDER BY id",
    )

    response = await planner_client.post("/lucy/ask", json={"question": "Excel of all orders"})

    assert response.status_code == 200
    body = response.json()
    assert body["intent"] == "report_generation"
    assert body["report_url"].startswith("http://test/lucy/report?query=")

    download = await planner_client.get(body["report_url"])
    assert download.status_code == 200
    assert download.headers["content-type"] == report.XLSX_MEDIA_TYPE

    sheet = load_workbook(io.BytesIO(download.content)).active
    rows = list(sheet.iter_rows(values_only=True))
    assert rows[0] == ("id", "transport", "cost_euros")
    assert len(rows) == 7


@pytest.mark.asyncio
async def test_ask_upstream_failure(planner_client: AsyncClient, scripted_gemini):
    scripted_gemini(httpx.Response(500, json={"error": {"message": "Internal"}}))

    response = await planner_client.post("/lucy/ask", json={"question": "Hello"})

    assert response.status_code == 500
    body = response.json()
    assert body["status"] == "error"
    assert "answer" in body


@pytest.mark.asyncio
async def test_ask_blank_question(planner_client: AsyncClient, scripted_gemini):
    fake = scripted_gemini()
    response = await planner_client.post("/lucy/ask", json={"question": "  "})
    assert response.status_code == 400
    assert fake.requests == []


@pytest.mark.asyncio
async def test_report_requires_query(planner_client: AsyncClient):
    response = await planner_client.get("/lucy/report")
    assert response.status_code == 400
    assert response.json()["message"] == "No query provided."


@pytest.mark.asyncio
async def test_report_refuses_unsafe_query(planner_client: AsyncClient):
    response = await planner_client.get(
        "/lucy/report", params={"query": "DELETE FROM PremiumFreight"}
    )
    assert response.status_code == 403
    assert response.json() == {"status": "error", "message": "Unsafe query detected."}


@pytest.mark.asyncio
async def test_report_refuses_wildcard_over_users(planner_client: AsyncClient):
    """A wildcard over User would leak password hashes, it is refused"""
    response = await planner_client.get("/lucy/report", params={"query": "SELECT * FROM User"})
    assert response.status_code == 403
    assert response.headers["content-type"].startswith("application/json")


@pytest.mark.asyncio
async def test_report_with_no_rows(planner_client: AsyncClient):
    response = await planner_client.get(
        "/lucy/report", params={"query": "SELECT id FROM PremiumFreight WHERE id < 0"}
    )
    assert response.status_code == 200
    assert "Lucy_Report_" in response.headers["content-disposition"]

    sheet = load_workbook(io.BytesIO(response.content)).active
    assert sheet["A1"].value == "No data available"


@pytest.mark.asyncio
async def test_report_database_error(planner_client: AsyncClient):
    response = await planner_client.get(
        "/lucy/report", params={"query": "SELECT id FROM MissingTable"}
    )
    assert response.status_code == 500
    assert response.json()["message"] == "Could not retrieve data for the report."


def test_workbook_header_style():
    content = report.build_workbook([{"carrier": "DHL", "total": 12.5}])
    sheet = load_workbook(io.BytesIO(content)).active
    assert sheet["A1"].value == "carrier"
    assert sheet["A1"].font.bold
    assert sheet["B2"].value == 12.5
