import pytest

from lucy.core.pipeline import sql_guard


@pytest.mark.parametrize(
    "query",
    [
        "SELECT COUNT(*) FROM PremiumFreight",
        "select id, cost_euros from PremiumFreight where LOWER(transport) = 'air';",
        "SELECT c.name, SUM(pf.cost_euros) FROM PremiumFreight pf "
        "JOIN Carriers c ON pf.carrier_id = c.id GROUP BY c.name",
        # Keywords only count as whole words
        "SELECT updated_at, created_by FROM PremiumFreight",
        # Wildcards are fine away from the User table
        "SELECT * FROM PremiumFreight",
        "SELECT pf.* FROM PremiumFreight pf JOIN Carriers c ON pf.carrier_id = c.id",
        "SELECT COUNT(*) FROM User",
        "SELECT cost_euros * 2 FROM PremiumFreight",
    ],
)
def test_read_queries_pass(query):
    assert sql_guard.is_safe_sql(query)


@pytest.mark.parametrize(
    "query, reason",
    [
        ("", "empty query"),
        ("DELETE FROM PremiumFreight", "only SELECT"),
        ("UPDATE User SET role = 'Admin'", "only SELECT"),
        ("SELECT 1; DROP TABLE User", "multiple statements"),
        ("SELECT * FROM User -- comment", "comments"),
        ("SELECT * FROM User /* hidden */", "comments"),
        ("SELECT * FROM User # hidden", "comments"),
        ("SELECT * INTO OUTFILE '/tmp/x' FROM User", "INTO"),
        ("SELECT SLEEP(10)", "SLEEP"),
        ("SELECT email, password FROM User", "password"),
        ("SELECT name FROM User WHERE authorization_level > 2", "authorization_level"),
        ("SELECT * FROM User", "wildcard"),
        ("SELECT DISTINCT * FROM `User`", "wildcard"),
        ("SELECT pf.id, u.* FROM PremiumFreight pf JOIN User u ON pf.user_id = u.id", "wildcard"),
        ("SELECT pf.cost_euros, * FROM PremiumFreight pf JOIN User u ON pf.user_id = u.id", "wildcard"),
        ("SELECT * FROM (SELECT * FROM User) AS people", "wildcard"),
    ],
)
def test_unsafe_queries_are_rejected(query, reason):
    safe, message = sql_guard.check_sql(query)
    assert not safe
    assert reason in message


def test_clean_generated_sql():
    """Markdown fences and the trailing semicolon are removed"""
    raw = "```sql\nSELECT COUNT(*) FROM PremiumFreight;\n```"
    assert sql_guard.clean_generated_sql(raw) == "SELECT COUNT(*) FROM PremiumFreight"


def test_clean_generated_sql_invalid_question():
    assert sql_guard.clean_generated_sql("INVALID_QUESTION") is None
    assert sql_guard.clean_generated_sql("   ") is None
