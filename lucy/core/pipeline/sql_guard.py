"""
Read-only gate for SQL that reaches the database from the assistant
or from a report URL.

A statement passes only when:
    - it starts with SELECT
    - it holds none of the write / DDL / side-effect keywords below
    - it is a single statement (one trailing ";" is tolerated)
    - it has no SQL comments
    - it does not touch the confidential User columns, neither by name
      nor through a wildcard (SELECT *, u.*) over the User table
"""

import re
from typing import Optional, Tuple

BLOCKED_KEYWORDS = (
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "TRUNCATE",
    "ALTER",
    "CREATE",
    "GRANT",
    "REVOKE",
    "REPLACE",
    "RENAME",
    "MERGE",
    "CALL",
    "EXEC",
    "EXECUTE",
    "LOAD",
    "HANDLER",
    "LOCK",
    "UNLOCK",
    "INTO",
    "OUTFILE",
    "DUMPFILE",
    "SLEEP",
    "BENCHMARK",
)

SENSITIVE_COLUMNS = ("password", "authorization_level", "verified")

_BLOCKED = re.compile(r"\b(" + "|".join(BLOCKED_KEYWORDS) + r")\b", re.IGNORECASE)
_SENSITIVE = re.compile(r"\b(" + "|".join(SENSITIVE_COLUMNS) + r")\b", re.IGNORECASE)
_COMMENT = re.compile(r"--|/\*|\*/|#")
# "*" as a projection: right after SELECT [DISTINCT], after a comma, or as alias.*
_STAR_PROJECTION = re.compile(
    r"(?:\bSELECT\s+(?:DISTINCT\s+)?|,\s*|\b\w+\s*\.\s*)\*", re.IGNORECASE
)
_USER_TABLE = re.compile(r"\bUser\b", re.IGNORECASE)


def check_sql(query: Optional[str]) -> Tuple[bool, str]:
    """Return (is_safe, reason)."""
    if not query or not query.strip():
        return False, "empty query"

    statement = query.strip()
    if statement.endswith(";"):
        statement = statement[:-1].rstrip()

    if not statement.upper().startswith("SELECT"):
        return False, "only SELECT statements are allowed"
    if ";" in statement:
        return False, "multiple statements are not allowed"
    if _COMMENT.search(statement):
        return False, "SQL comments are not allowed"

    blocked = _BLOCKED.search(statement)
    if blocked:
        return False, f"keyword {blocked.group(1).upper()} is not allowed"

    sensitive = _SENSITIVE.search(statement)
    if sensitive:
        return False, f"column {sensitive.group(1).lower()} is confidential"
    if _STAR_PROJECTION.search(statement) and _USER_TABLE.search(statement):
        return False, "wildcard columns over User would expose confidential columns"

    return True, "ok"


def is_safe_sql(query: Optional[str]) -> bool:
    return check_sql(query)[0]


def clean_generated_sql(text: str) -> Optional[str]:
    """
    Turn an LLM answer into a bare SQL statement.

    Returns None when the model declined with INVALID_QUESTION.
    """
    query = (text or "").strip()
    if "INVALID_QUESTION" in query:
        return None
    query = re.sub(r"```sql\s*", "", query, flags=re.IGNORECASE)
    query = re.sub(r"```\s*", "", query)
    query = query.strip()
    if query.endswith(";"):
        query = query[:-1].rstrip()
    return query or None
