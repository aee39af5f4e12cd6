"""
Remote Gateway - async HTTP client for the catalog API.

Single choke point for every remote call, ensuring:
- Session headers on every authenticated request (user id, bearer token, roles)
- Request/response logging with a request id and redacted sensitive headers
- Uniform error classification (NetworkError / ClientError / ServerError)
- Session-expired notification on 401
- Parsing of raw JSON into frozen entity models

The gateway never retries and never caches; caching belongs to the services.
"""

import functools
import secrets
import time
from collections.abc import Mapping, Sequence
from typing import Any, Literal

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from lab_catalog.core.config_loader import CatalogConfig
from lab_catalog.core.errors import NetworkError, ServerError, remote_error_for_status
from lab_catalog.core.session import SessionContext
from lab_catalog.models.entities import (
    Analysis,
    Determination,
    LoginResponse,
    Nbu,
    NomenclatureVersion,
    NomenclatureVersionWithDetails,
    Page,
    SampleType,
    WorksheetSetting,
)

logger = structlog.get_logger(__name__)

INVALID_RESPONSE = "Invalid response format"

SENSITIVE_HEADERS: frozenset[str] = frozenset({"authorization", "x-user-id", "cookie"})

# Filters accepted by the analysis listing and search endpoints
ANALYSIS_FILTER_KEYS: frozenset[str] = frozenset(
    {
        "short_code",
        "nbu_code",
        "name",
        "family_name",
        "description",
        "code",
        "nbu_determination",
        "nbu_abbreviation",
    }
)

AnalysisRelation = Literal["nbu", "sample_type", "worksheet_setting"]
NbuTermKind = Literal["synonyms", "abbreviations"]


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Copy of headers with credentials replaced by a placeholder."""
    return {key: "[REDACTED]" if key.lower() in SENSITIVE_HEADERS else value for key, value in headers.items()}


def analysis_filter_params(filters: Mapping[str, Any] | None) -> dict[str, str]:
    """
    Convert analysis filters to query parameters.

    Numbers are kept even when 0; strings are kept only when non-blank;
    None values are skipped.

    Raises:
        ValueError: Unknown filter key
    """
    if not filters:
        return {}
    unknown = set(filters) - ANALYSIS_FILTER_KEYS
    if unknown:
        raise ValueError(f"Unknown analysis filters: {sorted(unknown)}")

    params: dict[str, str] = {}
    for key, value in filters.items():
        if value is None or isinstance(value, bool):
            continue
        if isinstance(value, int | float):
            params[key] = str(value)
        elif isinstance(value, str) and value.strip():
            params[key] = value.strip()
    return params


def _error_detail(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return str(body[key])
    return None


@functools.cache
def _adapter(response_type: Any) -> TypeAdapter[Any]:
    return TypeAdapter(response_type)


class CatalogGateway:
    """
    Async client for the catalog REST API.

    Owns one httpx.AsyncClient, created lazily; close it with aclose() or use
    the gateway as an async context manager.
    """

    def __init__(
        self,
        config: CatalogConfig,
        session: SessionContext,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize gateway.

        Args:
            config: Catalog configuration (API root, timeout, header names)
            session: Session supplying identity headers
            transport: Optional transport override (tests use httpx.MockTransport)
        """
        self.config = config
        self.session = session
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.api_root,
                headers={"Accept": "application/json"},
                timeout=httpx.Timeout(self.config.timeout_s),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "CatalogGateway":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def session_headers(self) -> dict[str, str]:
        """
        Identity headers for an authenticated call.

        Raises:
            MissingSessionError: No authenticated user in the session
        """
        headers = {self.config.user_header: str(self.session.require_user_id())}
        token = self.session.token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        roles = self.session.roles.value
        if roles:
            headers[self.config.roles_header] = ",".join(roles)
        return headers

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        authenticated: bool = True,
        response_type: Any = None,
    ) -> Any:
        """
        Send one request and decode its body.

        Args:
            response_type: Type the JSON body is validated into (a model class,
                list[Model], Model | None); None returns the decoded JSON as-is

        Returns:
            Parsed body; an empty body counts as null

        Raises:
            NetworkError: Transport failure
            ClientError / ServerError: Error status, or a body that is not
                valid JSON or does not fit response_type
        """
        headers = self.session_headers() if authenticated else {}
        request_id = f"req-{secrets.token_hex(6)}"
        logger.debug(
            "http_request",
            request_id=request_id,
            operation=operation,
            method=method,
            path=path,
            headers=redact_headers(headers),
        )

        started = time.perf_counter()
        try:
            response = await self.client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("http_error", request_id=request_id, operation=operation, error=str(e))
            raise NetworkError(operation, str(e)) from e
        duration_ms = round((time.perf_counter() - started) * 1000, 1)

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.warning(
                "http_error",
                request_id=request_id,
                operation=operation,
                status_code=response.status_code,
                duration_ms=duration_ms,
                detail=detail,
            )
            # Rejected credentials on login are not an expired session
            if response.status_code == 401 and authenticated:
                self.session.notify_session_expired()
            raise remote_error_for_status(operation, response.status_code, detail)

        logger.debug(
            "http_response",
            request_id=request_id,
            operation=operation,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        try:
            data = response.json() if response.content else None
        except ValueError as e:
            raise ServerError(operation, response.status_code, INVALID_RESPONSE) from e
        if response_type is None:
            return data
        return self._parse(operation, response.status_code, response_type, data, request_id)

    def _parse(self, operation: str, status_code: int, response_type: Any, data: Any, request_id: str) -> Any:
        try:
            return _adapter(response_type).validate_python(data)
        except ValidationError as e:
            logger.warning(
                "http_invalid_body",
                request_id=request_id,
                operation=operation,
                status_code=status_code,
                errors=e.error_count(),
            )
            raise ServerError(operation, status_code, INVALID_RESPONSE) from e

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def login(self, username: str, password: str) -> LoginResponse:
        data = await self._request(
            "login",
            "POST",
            "/auth/internal/login",
            json={"username": username, "password": password},
            authenticated=False,
            response_type=LoginResponse | None,
        )
        return data or LoginResponse()

    # ------------------------------------------------------------------
    # Analyses
    # ------------------------------------------------------------------

    async def get_analysis_page(
        self,
        page: int,
        size: int,
        sort_by: str = "id",
        ascending: bool = True,
        filters: Mapping[str, Any] | None = None,
    ) -> Page[Analysis]:
        params = {
            "page": str(page),
            "size": str(size),
            "sortBy": sort_by,
            "isAscending": "true" if ascending else "false",
            **analysis_filter_params(filters),
        }
        return await self._request(
            "get_analysis_page", "GET", "/analysis/page", params=params, response_type=Page[Analysis]
        )

    async def get_analysis(self, analysis_id: int) -> Analysis:
        return await self._request("get_analysis", "GET", f"/analysis/{analysis_id}", response_type=Analysis)

    async def search_analyses(self, filters: Mapping[str, Any]) -> list[Analysis]:
        data = await self._request(
            "search_analyses",
            "GET",
            "/analysis",
            params=analysis_filter_params(filters),
            response_type=list[Analysis] | None,
        )
        return data or []

    async def patch_analysis(self, analysis_id: int, payload: Mapping[str, Any]) -> Analysis:
        return await self._request(
            "update_analysis",
            "PATCH",
            f"/analysis/{analysis_id}",
            json=dict(payload),
            response_type=Analysis,
        )

    async def put_analysis_relation(self, analysis_id: int, relation: AnalysisRelation, target_id: int) -> Analysis:
        return await self._request(
            f"update_analysis_{relation}",
            "PUT",
            f"/analysis/{analysis_id}/{relation}",
            json=target_id,
            response_type=Analysis,
        )

    async def add_analysis_determinations(self, analysis_id: int, determination_ids: Sequence[int]) -> Analysis:
        return await self._request(
            "add_determinations",
            "POST",
            f"/analysis/{analysis_id}/determinations",
            json=list(determination_ids),
            response_type=Analysis,
        )

    async def remove_analysis_determinations(self, analysis_id: int, determination_ids: Sequence[int]) -> Analysis:
        return await self._request(
            "remove_determinations",
            "DELETE",
            f"/analysis/{analysis_id}/determinations",
            json=list(determination_ids),
            response_type=Analysis,
        )

    async def delete_analysis(self, analysis_id: int) -> None:
        await self._request("delete_analysis", "DELETE", f"/analysis/{analysis_id}")

    # ------------------------------------------------------------------
    # Determinations, sample types, worksheet settings
    # ------------------------------------------------------------------

    async def list_determinations(self) -> list[Determination]:
        data = await self._request(
            "list_determinations", "GET", "/determinations", response_type=list[Determination] | None
        )
        return data or []

    async def put_determination(self, payload: Mapping[str, Any]) -> Determination:
        return await self._request(
            "upsert_determination",
            "PUT",
            "/determinations",
            json=dict(payload),
            response_type=Determination,
        )

    async def put_sample_type(self, payload: Mapping[str, Any]) -> SampleType:
        return await self._request(
            "upsert_sample_type",
            "PUT",
            "/sample_types",
            json=dict(payload),
            response_type=SampleType,
        )

    async def put_worksheet_setting(self, payload: Mapping[str, Any]) -> WorksheetSetting:
        return await self._request(
            "upsert_worksheet_setting",
            "PUT",
            "/worksheet_setting",
            json=dict(payload),
            response_type=WorksheetSetting,
        )

    # ------------------------------------------------------------------
    # Nomenclature versions and membership
    # ------------------------------------------------------------------

    async def list_versions(self) -> list[NomenclatureVersion]:
        data = await self._request(
            "list_versions", "GET", "/analysis/nbu/versions", response_type=list[NomenclatureVersion] | None
        )
        return data or []

    async def list_versions_with_details(self) -> list[NomenclatureVersionWithDetails]:
        data = await self._request(
            "list_version_details",
            "GET",
            "/analysis/nbu/versions/nbu_detail",
            response_type=list[NomenclatureVersionWithDetails] | None,
        )
        return data or []

    async def put_version(self, payload: Mapping[str, Any]) -> NomenclatureVersion:
        return await self._request(
            "save_version",
            "PUT",
            "/analysis/nbu/versions/version",
            json=dict(payload),
            response_type=NomenclatureVersion,
        )

    async def associate(self, nbu_id: int, version_id: int, ub: float) -> Nbu | None:
        return await self._request(
            "associate_nbu", "PUT", f"/nbu/{nbu_id}/version/{version_id}", json=ub, response_type=Nbu | None
        )

    async def disassociate(self, nbu_id: int, version_id: int) -> Nbu | None:
        return await self._request(
            "disassociate_nbu", "DELETE", f"/nbu/{nbu_id}/version/{version_id}", response_type=Nbu | None
        )

    # ------------------------------------------------------------------
    # NBU
    # ------------------------------------------------------------------

    async def patch_nbu(self, nbu_id: int, payload: Mapping[str, Any]) -> Nbu:
        return await self._request("update_nbu", "PATCH", f"/nbu/{nbu_id}", json=dict(payload), response_type=Nbu)

    async def change_nbu_terms(self, nbu_id: int, kind: NbuTermKind, terms: Sequence[str], add: bool) -> Nbu:
        method = "POST" if add else "DELETE"
        operation = f"{'add' if add else 'remove'}_{kind}"
        return await self._request(operation, method, f"/nbu/{nbu_id}/{kind}", json=list(terms), response_type=Nbu)

    async def put_standard_interpretation(self, nbu_id: int, body: Mapping[str, Any]) -> Nbu:
        return await self._request(
            "update_standard_interpretation",
            "PUT",
            f"/nbu/{nbu_id}/standard_interpretation",
            json=dict(body),
            response_type=Nbu,
        )
