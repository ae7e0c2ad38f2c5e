"""
PROMPT STEP - Every text we send to Gemini is rendered here.

All functions are pure: records and strings in, one string out.
"""

from typing import Any, Dict, List, Sequence

from lucy.core import schemas

SAMPLE_SIZE = 20

PERSONA = (
    "You are Lucy, the AI assistant of the Premium Freight logistics team.\n"
    "Your persona: analytical, precise, friendly, patient, professional and formal. "
    "You are a specialist in logistics. You do not use emojis.\n"
    "Never reveal that you are a language model or mention any third-party AI company."
)

CHART_TYPES = {
    "ColumnClustered": "vertical bars, compare categories",
    "BarClustered": "horizontal bars, rankings",
    "Line": "trends over time",
    "Pie": "proportions / distribution",
    "Area": "accumulated evolution",
    "Scatter": "correlations",
}

DASHBOARD_EXAMPLE = """```json
{
  "action": "create",
  "worksheets": [
    {
      "name": "Dashboard",
      "data": [{"carrier": "DHL", "total_cost": 1520.5}],
      "columns": ["carrier", "total_cost"],
      "charts": [
        {"type": "ColumnClustered", "dataRange": "A1:B10", "title": "Cost by carrier", "position": {"row": 0, "column": 4}},
        {"type": "Pie", "dataRange": "A1:B6", "title": "Cost distribution", "position": {"row": 15, "column": 4}}
      ],
      "tables": [{"range": "A1:B10", "hasHeaders": true}]
    }
  ]
}
```"""


# ============================================================================
# DASHBOARD PROMPT
# ============================================================================


def take_sample(records: Sequence[Any], size: int = SAMPLE_SIZE) -> List[Any]:
    """First `size` records (the newest ones, the fetcher sorts them)."""
    return list(records[: max(0, min(size, SAMPLE_SIZE))])


def _type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, (list, dict)):
        return "object"
    return "string"


def describe_fields(sample: Sequence[schemas.OrderRecord]) -> List[str]:
    """
    List the field names of the sampled records with their value type.

    Values themselves never end up in the prompt, only the shape.
    The type comes from the first record holding a non-null value.
    """
    if not sample:
        return []

    dumped: List[Dict[str, Any]] = [record.model_dump(mode="json") for record in sample]
    lines = []
    for field in dumped[0]:
        value = next((row[field] for row in dumped if row.get(field) is not None), None)
        type_name = _type_name(value) if value is not None else "null"
        lines.append(f"- {field} ({type_name})")
    return lines


def build_dashboard_prompt(
    total_records: int, sample: Sequence[schemas.OrderRecord], request: str
) -> str:
    """
    Render the dashboard-generation prompt.

    Args:
        total_records: How many orders the fetch step returned
        sample: Records whose field names are described (capped at 20)
        request: The user's free-text request

    Returns:
        One prompt string, ready for the LLM client
    """
    sample = take_sample(sample)
    fields = describe_fields(sample)
    field_block = "\n".join(fields) if fields else "- no data available"
    chart_block = "\n".join(f"- {name}: {usage}" for name, usage in CHART_TYPES.items())

    return (
        f"{PERSONA}\n"
        "You build VISUAL dashboards over Premium Freight orders.\n\n"
        f"DATA: you have access to {total_records} records.\n"
        f"Sample size: {len(sample)} records. Available fields:\n"
        f"{field_block}\n\n"
        "CHART TYPES:\n"
        f"{chart_block}\n\n"
        "RULES:\n"
        "- Every dashboard MUST include AT LEAST 2 charts.\n"
        "- Group and filter the data before charting, never chart raw rows.\n"
        "- Use descriptive titles that explain the insight.\n\n"
        "Answer ONLY with a single ```json fenced block using this structure:\n"
        f"{DASHBOARD_EXAMPLE}\n\n"
        f"REQUEST: {request}"
    )


# ============================================================================
# ASSISTANT PROMPTS
# ============================================================================


def build_language_prompt(question: str) -> str:
    return (
        "Your only job is to detect the language of the user's question.\n"
        'Respond with ONLY a JSON object with a single key "language" and the ISO 639-1 code.\n'
        "Examples:\n"
        'User: "¿Cuántas órdenes tenemos?" -> Response: {"language": "es"}\n'
        'User: "Hello, who are you?" -> Response: {"language": "en"}\n'
        "Now, analyze the following user question. Reply with ONLY the JSON object.\n"
        f'User question: "{question}"'
    )


def build_intent_prompt(question: str) -> str:
    categories = ", ".join(f'"{intent.value}"' for intent in schemas.Intent)
    return (
        "You are a precise security and intent classifier. Your ONLY job is to classify "
        f"questions into ONE of these categories: {categories}.\n"
        'CRITICAL: You MUST respond with ONLY this exact JSON format: {"intent": "category_name"}\n\n'
        "CATEGORIES:\n"
        '- "data_modification_attempt": Any request to change, add, or delete data '
        "(INSERT, UPDATE, DELETE, DROP, etc.).\n"
        '- "report_generation": Any request to create a file, especially Excel, CSV, '
        "or any kind of document/report.\n"
        '- "database_query": Read-only questions about company data (orders, costs, users, etc.).\n'
        '- "general_knowledge": General questions, translations, explanations.\n'
        '- "general_conversation": Greetings, casual chat.\n\n'
        "NOW CLASSIFY THIS QUESTION. Reply with ONLY the JSON:\n"
        f'"{question}"'
    )


SCHEMA_DDL = """CREATE TABLE `User` (
  `id` int(11) NOT NULL AUTO_INCREMENT,
  `name` varchar(100) NOT NULL,
  `email` varchar(100) NOT NULL,
  `role` varchar(50) DEFAULT 'Worker',
  `plant` varchar(50) DEFAULT NULL,
  PRIMARY KEY (`id`)
);

CREATE TABLE `Location` (
  `id` int(11) NOT NULL AUTO_INCREMENT,
  `company_name` varchar(100) DEFAULT NULL,
  `city` varchar(100) DEFAULT NULL,
  `state` varchar(100) DEFAULT NULL,
  `zip` varchar(20) DEFAULT NULL,
  PRIMARY KEY (`id`)
);

CREATE TABLE `Carriers` (
  `id` int(11) NOT NULL AUTO_INCREMENT,
  `name` varchar(100) NOT NULL,
  PRIMARY KEY (`id`)
);

CREATE TABLE `Status` (
  `id` int(11) NOT NULL AUTO_INCREMENT,
  `name` varchar(50) NOT NULL,
  PRIMARY KEY (`id`)
);

CREATE TABLE `PremiumFreight` (
  `id` int(11) NOT NULL AUTO_INCREMENT,
  `user_id` int(11) DEFAULT NULL,
  `date` datetime DEFAULT NULL,
  `planta` varchar(50) DEFAULT NULL,
  `transport` varchar(50) DEFAULT NULL,
  `in_out_bound` varchar(50) DEFAULT NULL,
  `cost_euros` decimal(15,2) DEFAULT NULL,
  `description` longtext DEFAULT NULL,
  `area` varchar(50) DEFAULT NULL,
  `category_cause` varchar(50) DEFAULT NULL,
  `origin_id` int(11) DEFAULT NULL,
  `destiny_id` int(11) DEFAULT NULL,
  `status_id` int(11) DEFAULT 1,
  `moneda` varchar(3) DEFAULT NULL,
  `carrier_id` int(11) DEFAULT NULL,
  PRIMARY KEY (`id`)
);"""


def build_sql_prompt(question: str) -> str:
    return (
        "You are a world-class MySQL expert. Your ONLY job is to generate a valid, read-only "
        "SQL query based on the user's question and the provided database schema and rules.\n\n"
        "### RULES ###\n"
        "1. READ-ONLY: The query MUST start with SELECT. Never generate INSERT, UPDATE, DELETE or any DDL.\n"
        "2. SENSITIVE DATA: Never select or filter on `password`, `authorization_level` or `verified`.\n"
        "3. OUTPUT FORMAT: Return ONLY the raw SQL query. No explanations, no markdown, no trailing semicolon.\n"
        "4. INVALID QUESTIONS: If the question cannot be answered with a read-only SELECT, "
        "return exactly: INVALID_QUESTION\n"
        "5. JOIN ALIASES: When a table is joined more than once, give every join its own alias.\n"
        "6. CASE-INSENSITIVE SEARCH: Use LOWER() for string comparisons in WHERE clauses.\n"
        "7. COSTS: Use the `cost_euros` column. `moneda` is informational only.\n\n"
        "### DATABASE SCHEMA (DDL) ###\n"
        f"{SCHEMA_DDL}\n"
        "### End Schema ###\n\n"
        f'User Question: "{question}"\n\n'
        "SQL Query:"
    )


def build_data_answer_prompt(question: str, data_json: str, language: str) -> str:
    return (
        f"{PERSONA}\n"
        "Your task is to interpret a database query result and answer the user's original question.\n"
        "Your response MUST be in the specified language. Be direct, concise and precise. "
        "Do NOT mention that you ran a query.\n"
        f"- Language for response: {language}\n"
        f'- User\'s original question: "{question}"\n'
        f"- Data returned from the database (JSON): `{data_json}`\n"
        "- If the data is empty, state that no information was found for the request.\n"
        "- If the data is a number (a count or a sum), state it clearly.\n"
        "- If the data is a list, format it cleanly and professionally."
    )


def build_general_prompt(question: str, language: str) -> str:
    return (
        f"{PERSONA}\n"
        "Your job is to answer the user's general question directly and accurately.\n"
        "Your response MUST be in the specified language. Be concise and act like an expert.\n"
        f"- Language for response: {language}\n"
        f'- User\'s question: "{question}"\n'
        "Provide a direct, formal and helpful answer."
    )


def build_conversation_prompt(question: str, language: str, user_name: str) -> str:
    return (
        f"{PERSONA}\n"
        "Your response MUST be in the specified language.\n"
        f"- Language for response: {language}\n"
        f"- User's name: {user_name}\n"
        f'- User\'s message: "{question}"\n'
        "Respond naturally and professionally, embodying your persona."
    )
