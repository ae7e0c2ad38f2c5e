from datetime import datetime
from typing import Annotated, Optional, List, Dict, Any, Literal, NamedTuple, Union
from enum import Enum

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    TypeAdapter,
    field_validator,
)


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]


# =========================
# Enums
# =========================
class Intent(str, Enum):
    DATA_MODIFICATION = "data_modification_attempt"
    REPORT_GENERATION = "report_generation"
    DATABASE_QUERY = "database_query"
    GENERAL_KNOWLEDGE = "general_knowledge"
    GENERAL_CONVERSATION = "general_conversation"


# =========================
# USER / SESSION
# =========================
class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class SessionUser(BaseModel):
    """What we keep in the signed session cookie after login."""

    id: int
    name: str
    email: str
    plant: Optional[str] = None
    authorization_level: int = 0
    role: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("plant", mode="before")
    @classmethod
    def plant_as_text(cls, value):
        return None if value is None else str(value)


# =========================
# ORDERS
# =========================
class OrderRecord(BaseModel):
    id: int
    date: Optional[datetime] = None
    plant: Optional[str] = None
    transport: Optional[str] = None
    cost_euros: Optional[float] = None
    category_cause: Optional[str] = None
    carrier: Optional[str] = None
    status_name: Optional[str] = None
    origin_city: Optional[str] = None
    destiny_city: Optional[str] = None

    model_config = ConfigDict(frozen=True)


# =========================
# DASHBOARD SPEC (what Gemini answers with)
# =========================
class ChartSpec(BaseModel):
    type: str
    data_range: Optional[str] = Field(default=None, alias="dataRange")
    title: Optional[str] = None
    position: Optional[Dict[str, int]] = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class TableSpec(BaseModel):
    range: Optional[str] = None
    has_headers: bool = Field(default=True, alias="hasHeaders")
    style: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class Worksheet(BaseModel):
    name: str = Field(min_length=1)
    data: List[Dict[str, Any]] = []
    columns: List[str] = []
    charts: List[ChartSpec] = []
    tables: List[TableSpec] = []
    formatting: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="allow")


class WorksheetParts(NamedTuple):
    data: List[Dict[str, Any]]
    columns: List[str]
    charts: List[ChartSpec]
    tables: List[TableSpec]


class DashboardSpec(BaseModel):
    action: Literal["create", "update"] = "create"
    worksheets: List[Worksheet] = Field(min_length=1)

    model_config = ConfigDict(extra="allow")

    def by_name(self) -> Dict[str, WorksheetParts]:
        return {
            sheet.name: WorksheetParts(sheet.data, sheet.columns, sheet.charts, sheet.tables)
            for sheet in self.worksheets
        }


# =========================
# POWER BI PUBLISH REQUESTS
# One variant per action, FastAPI picks the variant from "action".
# =========================
class CreateDashboard(BaseModel):
    action: Literal["create"] = "create"
    file_name: Optional[str] = Field(default=None, alias="fileName")
    worksheets: List[Worksheet] = []

    model_config = ConfigDict(populate_by_name=True)


class UpdateDashboard(BaseModel):
    action: Literal["update"] = "update"
    dataset_id: str = Field(alias="datasetId", min_length=1)
    worksheets: List[Worksheet] = []

    model_config = ConfigDict(populate_by_name=True)


class GetDashboard(BaseModel):
    action: Literal["get"] = "get"
    dataset_id: str = Field(alias="datasetId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


PublishRequest = Annotated[
    Union[CreateDashboard, UpdateDashboard, GetDashboard],
    Field(discriminator="action"),
]


class RemoteDataset(BaseModel):
    dataset_id: str
    embed_url: str
    embed_token: str
    report_id: Optional[str] = None
    dataset_name: Optional[str] = None
    updated: bool = False


# =========================
# LUCY REQUESTS
# =========================
class QuestionRequest(BaseModel):
    question: NonBlankStr


class ChatTurn(BaseModel):
    """One earlier message of the dashboard conversation."""

    role: str
    content: str


class DashboardRequest(BaseModel):
    request: NonBlankStr
    dataset_id: Optional[str] = None
    history: List[ChatTurn] = []


class AssistantAnswer(BaseModel):
    status: str = "success"
    answer: str
    language: str
    intent: Intent
    report_url: Optional[str] = None


publish_request_adapter = TypeAdapter(PublishRequest)
