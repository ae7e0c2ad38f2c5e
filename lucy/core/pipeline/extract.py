"""
EXTRACT STEP - Pull the DashboardSpec out of Gemini's free text.

Two tiers, because the model does not always honor the fence instruction:
    1. first ```json fenced block, parsed on its own
    2. no fence at all -> the whole text is parsed

A block that is found but does not parse is an error, never an empty
dashboard.
"""

import json
import re
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from lucy.core import schemas
from lucy.core.errors import ParseError

FENCE_PATTERN = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)


@dataclass(frozen=True)
class Extraction:
    spec: Optional[schemas.DashboardSpec] = None
    error: Optional[str] = None
    fenced: bool = False

    @property
    def ok(self) -> bool:
        return self.spec is not None

    def unwrap(self) -> schemas.DashboardSpec:
        if self.spec is None:
            raise ParseError(self.error or "No dashboard structure found")
        return self.spec


def parse_dashboard_spec(raw: str) -> schemas.DashboardSpec:
    """Parse one JSON document into a DashboardSpec, ParseError on any problem."""
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise ParseError(f"Invalid JSON: {error}")

    try:
        return schemas.DashboardSpec.model_validate(payload)
    except ValidationError as error:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in issue['loc']) or 'root'}: {issue['msg']}"
            for issue in error.errors()
        )
        raise ParseError(f"Invalid dashboard structure: {problems}")


def extract_dashboard_spec(text: str) -> Extraction:
    match = FENCE_PATTERN.search(text or "")
    fenced = match is not None
    raw = match.group(1) if fenced else (text or "").strip()

    if not raw:
        return Extraction(error="Empty response, no dashboard structure found", fenced=fenced)

    try:
        return Extraction(spec=parse_dashboard_spec(raw), fenced=fenced)
    except ParseError as error:
        prefix = "Fenced JSON block" if fenced else "No ```json block found and the response"
        return Extraction(error=f"{prefix} could not be parsed. {error.message}", fenced=fenced)


def strip_fenced_block(text: str) -> str:
    """The model's prose with the JSON block removed."""
    return FENCE_PATTERN.sub("", text or "").strip()
