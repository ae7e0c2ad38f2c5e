"""
PUBLISH STEP - Push a DashboardSpec into a Power BI push dataset.

Flow per publish operation:
    AcquireToken -> CreateDataset | existing dataset id
                 -> for each table with rows: (DELETE rows if update) -> POST rows
                 -> embed info (report lookup + GenerateToken)

One bearer token per operation, no refresh in the middle.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx

from lucy.core import schemas
from lucy.core.config import is_placeholder, settings
from lucy.core.errors import ResponseShapeError, TokenError, UpstreamError

logger = logging.getLogger(__name__)

PUBLISH_TIMEOUT = 30.0
MAX_NAME_LENGTH = 100
POWERBI_SCOPE = "https://analysis.windows.net/powerbi/api/.default"
APP_URL = "https://app.powerbi.com"

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_]")
_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")


# ============================================================================
# NAMES AND TYPES
# ============================================================================


def sanitize_name(name: str) -> str:
    """Power BI only takes [A-Za-z0-9_] in names, at most 100 characters."""
    return _INVALID_NAME_CHARS.sub("_", str(name))[:MAX_NAME_LENGTH]


def infer_data_type(value: Any) -> str:
    # bool first: True is an int in Python
    if isinstance(value, bool):
        return "Boolean"
    if isinstance(value, int):
        return "Int64"
    if isinstance(value, float):
        return "Double"
    if isinstance(value, str) and _DATE_PREFIX.match(value):
        return "DateTime"
    return "String"


def build_table(worksheet: schemas.Worksheet) -> Dict[str, Any]:
    """Table definition for the dataset payload, types come from the first row."""
    if worksheet.data:
        columns = [
            {"name": sanitize_name(key), "dataType": infer_data_type(value)}
            for key, value in worksheet.data[0].items()
        ]
    else:
        columns = [
            {"name": sanitize_name(column), "dataType": "String"}
            for column in worksheet.columns
        ]
    return {"name": sanitize_name(worksheet.name), "columns": columns}


def normalize_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Rename row keys the same way the columns were renamed."""
    return [{sanitize_name(key): value for key, value in row.items()} for row in rows]


def default_dataset_name(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"Lucy_Dashboard_{now.strftime('%Y-%m-%d_%H%M%S')}"


# ============================================================================
# CLIENT
# ============================================================================


class PowerBIClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        tenant_id: str,
        workspace_id: str,
        api_url: str = settings.POWERBI_API_URL,
        authority_url: str = settings.POWERBI_AUTHORITY_URL,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.tenant_id = tenant_id
        self.workspace_id = workspace_id
        self.api_url = api_url.rstrip("/")
        self.authority_url = authority_url.rstrip("/")
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient()

    @classmethod
    def from_settings(cls, http_client: Optional[httpx.AsyncClient] = None):
        return cls(
            client_id=settings.POWERBI_CLIENT_ID,
            client_secret=settings.POWERBI_CLIENT_SECRET,
            tenant_id=settings.POWERBI_TENANT_ID,
            workspace_id=settings.POWERBI_WORKSPACE_ID,
            api_url=settings.POWERBI_API_URL,
            authority_url=settings.POWERBI_AUTHORITY_URL,
            http_client=http_client,
        )

    @property
    def group_url(self) -> str:
        return f"{self.api_url}/groups/{self.workspace_id}"

    def rows_url(self, dataset_id: str, table_name: str) -> str:
        return f"{self.group_url}/datasets/{dataset_id}/tables/{table_name}/rows"

    # ---------------- authentication ----------------

    async def acquire_token(self) -> str:
        credentials = (self.client_id, self.client_secret, self.tenant_id)
        if any(is_placeholder(value) for value in credentials):
            raise TokenError(
                "Power BI credentials are not configured "
                "(POWERBI_CLIENT_ID, POWERBI_CLIENT_SECRET, POWERBI_TENANT_ID)"
            )

        token_url = f"{self.authority_url}/{self.tenant_id}/oauth2/v2.0/token"
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": POWERBI_SCOPE,
            "grant_type": "client_credentials",
        }

        try:
            response = await self.http_client.post(
                token_url, data=form, timeout=PUBLISH_TIMEOUT
            )
        except httpx.HTTPError as error:
            raise TokenError(f"Could not reach the identity provider: {error}")

        if response.status_code != 200:
            message = _token_error_message(response)
            raise TokenError(
                f"Error obtaining access token ({response.status_code}): {message}",
                upstream_status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = None
        token = body.get("access_token") if isinstance(body, dict) else None
        if not isinstance(token, str) or not token:
            raise TokenError("No access token in identity provider response")
        return token

    # ---------------- raw REST call ----------------

    async def _request(
        self, token: str, method: str, url: str, payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"}
        try:
            response = await self.http_client.request(
                method,
                url,
                headers=headers,
                json=payload if method != "GET" else None,
                timeout=PUBLISH_TIMEOUT,
            )
        except httpx.HTTPError as error:
            logger.error(f"Power BI API Request: {method} {url} failed: {error}")
            raise UpstreamError(f"Power BI API connection error: {error}")

        logger.info(f"Power BI API Request: {method} {url} -> {response.status_code}")

        if not 200 <= response.status_code < 300:
            message = _api_error_message(response)
            raise UpstreamError(
                f"Power BI API error ({response.status_code}): {message}",
                upstream_status=response.status_code,
            )

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            return {}
        if not isinstance(body, dict):
            raise ResponseShapeError(
                f"Power BI API returned an unexpected body for {method} {url}: {str(body)[:200]}"
            )
        return body

    # ---------------- dataset operations ----------------

    async def create_dataset(
        self, token: str, name: str, worksheets: List[schemas.Worksheet]
    ) -> Dict[str, Any]:
        payload = {
            "name": name,
            "tables": [build_table(sheet) for sheet in worksheets],
            "defaultMode": "Push",
        }
        return await self._request(token, "POST", f"{self.group_url}/datasets", payload)

    async def insert_rows(
        self, token: str, dataset_id: str, table_name: str, rows: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        url = self.rows_url(dataset_id, table_name)
        return await self._request(token, "POST", url, {"rows": normalize_rows(rows)})

    async def delete_rows(self, token: str, dataset_id: str, table_name: str):
        return await self._request(token, "DELETE", self.rows_url(dataset_id, table_name))

    async def get_embed_info(self, token: str, dataset_id: str) -> Dict[str, Any]:
        reports = await self._request(token, "GET", f"{self.group_url}/reports")
        listed = reports.get("value") or []
        if not isinstance(listed, list):
            raise ResponseShapeError("Power BI report list is not a list")

        report_id = next(
            (
                str(report["id"])
                for report in listed
                if isinstance(report, dict)
                and report.get("id")
                and report.get("datasetId") == dataset_id
            ),
            None,
        )

        if report_id:
            embed_url = f"{APP_URL}/reportEmbed?reportId={report_id}&groupId={self.workspace_id}"
        else:
            # No report bound yet, point at the dataset so it can be explored
            embed_url = f"{APP_URL}/groups/{self.workspace_id}/datasets/{dataset_id}/details"

        token_payload = {
            "datasets": [{"id": dataset_id}],
            "reports": [{"id": report_id}] if report_id else [],
            "targetWorkspaces": [{"id": self.workspace_id}],
        }
        generated = await self._request(
            token, "POST", f"{self.api_url}/GenerateToken", token_payload
        )

        embed_token = generated.get("token")
        if not isinstance(embed_token, str) or not embed_token:
            raise ResponseShapeError("Power BI did not return an embed token")

        return {
            "embed_url": embed_url,
            "embed_token": embed_token,
            "report_id": report_id,
        }

    # ---------------- publish state machine ----------------

    async def publish(self, request: schemas.PublishRequest) -> schemas.RemoteDataset:
        token = await self.acquire_token()

        if isinstance(request, schemas.CreateDashboard):
            return await self._create(token, request)
        if isinstance(request, schemas.UpdateDashboard):
            return await self._update(token, request)
        if isinstance(request, schemas.GetDashboard):
            embed = await self.get_embed_info(token, request.dataset_id)
            return schemas.RemoteDataset(dataset_id=request.dataset_id, **embed)
        raise TypeError(f"Unsupported publish request: {type(request).__name__}")

    async def _create(
        self, token: str, request: schemas.CreateDashboard
    ) -> schemas.RemoteDataset:
        dataset_name = sanitize_name(request.file_name or default_dataset_name())
        dataset = await self.create_dataset(token, dataset_name, request.worksheets)
        dataset_id = dataset.get("id")
        if not isinstance(dataset_id, str) or not dataset_id:
            raise ResponseShapeError("Power BI did not return a dataset id")

        for table_name, rows in _tables_with_rows(request.worksheets):
            await self.insert_rows(token, dataset_id, table_name, rows)

        embed = await self.get_embed_info(token, dataset_id)
        return schemas.RemoteDataset(
            dataset_id=dataset_id, dataset_name=dataset_name, **embed
        )

    async def _update(
        self, token: str, request: schemas.UpdateDashboard
    ) -> schemas.RemoteDataset:
        # No diffing: clear the table, then push the new rows
        for table_name, rows in _tables_with_rows(request.worksheets):
            await self.delete_rows(token, request.dataset_id, table_name)
            await self.insert_rows(token, request.dataset_id, table_name, rows)

        embed = await self.get_embed_info(token, request.dataset_id)
        return schemas.RemoteDataset(dataset_id=request.dataset_id, updated=True, **embed)

    async def aclose(self):
        if self._owns_client:
            await self.http_client.aclose()


def _tables_with_rows(
    worksheets: List[schemas.Worksheet],
) -> List[Tuple[str, List[Dict[str, Any]]]]:
    return [(sanitize_name(sheet.name), sheet.data) for sheet in worksheets if sheet.data]


def _token_error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or "Unknown error"
    return body.get("error_description") or body.get("error") or "Unknown error"


def _api_error_message(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return response.text or "Unknown error"


def publish_request_from_spec(
    spec: schemas.DashboardSpec, dataset_id: Optional[str] = None
) -> schemas.PublishRequest:
    """An existing dataset id means update, otherwise a fresh dataset is created."""
    wanted = "update" if dataset_id else "create"
    if spec.action != wanted:
        logger.warning(
            f"Dashboard asked for action '{spec.action}', running '{wanted}' "
            f"(dataset id {'given' if dataset_id else 'missing'})"
        )
    if dataset_id:
        return schemas.UpdateDashboard(dataset_id=dataset_id, worksheets=spec.worksheets)
    return schemas.CreateDashboard(worksheets=spec.worksheets)


# Dependency: one client per request, closed when the request is done
async def get_powerbi_client():
    client = PowerBIClient.from_settings()
    try:
        yield client
    finally:
        await client.aclose()
