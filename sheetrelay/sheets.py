"""
Google Sheets values API client.

The pipeline only needs four range operations (get, update, append, clear),
described by the RemoteTableClient protocol. SheetsClient implements them
against the Sheets v4 REST endpoints with `requests`. Authentication is the
caller's concern: pass an OAuth access token or an already-authorised
session.
"""

from typing import Any, List, Optional, Protocol
from urllib.parse import quote

import requests

from .logger import StructuredLogger, get_logger
from .retry import is_transient_error, should_retry_http_status

SHEETS_API_ENDPOINT = "https://sheets.googleapis.com/v4/spreadsheets"
SPREADSHEET_URL = "https://docs.google.com/spreadsheets/d/{spreadsheet_id}"

Row = List[Any]


class RemoteTableClient(Protocol):
    def get(self, table_id: str, range_: str) -> List[Row]: ...

    def update(self, table_id: str, range_: str, rows: List[Row]) -> None: ...

    def append(self, table_id: str, range_: str, rows: List[Row]) -> None: ...

    def clear(self, table_id: str, range_: str) -> None: ...


class SheetsApiError(RuntimeError):
    """Non-2xx response from the Sheets API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Sheets API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


def spreadsheet_url(spreadsheet_id: str) -> str:
    """Browser URL of a spreadsheet, used as the provenance tag of fetched rows."""
    return SPREADSHEET_URL.format(spreadsheet_id=spreadsheet_id)


def is_retryable_error(exception: BaseException) -> bool:
    """
    Classify a client error as retryable (rate limit, 5xx, network) or permanent.

    A malformed range or a missing spreadsheet comes back as 400/404 and is
    not worth spending retry budget on.
    """
    if isinstance(exception, SheetsApiError):
        return should_retry_http_status(exception.status_code)
    if isinstance(exception, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
        return True
    return is_transient_error(exception)


class SheetsClient:
    """HTTP client for spreadsheets.values.{get,update,append,clear}."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        *,
        session: Optional[requests.Session] = None,
        base_url: str = SHEETS_API_ENDPOINT,
        timeout: int = 30,
        value_input_option: str = "USER_ENTERED",
        logger: Optional[StructuredLogger] = None,
    ):
        """
        Args:
            access_token: OAuth 2.0 bearer token with the spreadsheets scope
            session: Pre-configured session (e.g. google-auth AuthorizedSession)
            base_url: API root, overridable for tests
            timeout: Per-request timeout in seconds
            value_input_option: How written values are interpreted
            logger: Logger used for API call metrics
        """
        if access_token is None and session is None:
            raise ValueError("SheetsClient needs an access_token or an authorised session")
        self._session = session or requests.Session()
        if access_token:
            self._session.headers.update({"Authorization": f"Bearer {access_token}"})
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._value_input_option = value_input_option
        self.logger = logger or get_logger()

    def get(self, table_id: str, range_: str) -> List[Row]:
        payload = self._request("get", "GET", table_id, range_)
        return payload.get("values") or []

    def update(self, table_id: str, range_: str, rows: List[Row]) -> None:
        self._request(
            "update",
            "PUT",
            table_id,
            range_,
            params={"valueInputOption": self._value_input_option},
            body={"range": range_, "majorDimension": "ROWS", "values": rows},
        )

    def append(self, table_id: str, range_: str, rows: List[Row]) -> None:
        self._request(
            "append",
            "POST",
            table_id,
            range_,
            suffix=":append",
            params={
                "valueInputOption": self._value_input_option,
                "insertDataOption": "OVERWRITE",
            },
            body={"range": range_, "majorDimension": "ROWS", "values": rows},
        )

    def clear(self, table_id: str, range_: str) -> None:
        self._request("clear", "POST", table_id, range_, suffix=":clear", body={})

    def _url(self, table_id: str, range_: str, suffix: str = "") -> str:
        return f"{self._base_url}/{quote(table_id, safe='')}/values/{quote(range_, safe='')}{suffix}"

    def _request(
        self,
        operation: str,
        method: str,
        table_id: str,
        range_: str,
        *,
        suffix: str = "",
        params: Optional[dict] = None,
        body: Optional[dict] = None,
    ) -> dict:
        """
        Send one request and return the decoded JSON body.

        Raises:
            SheetsApiError: On any non-2xx status
            requests.exceptions.RequestException: On transport failures
        """
        self.logger.record_api_call(operation)
        resp = self._session.request(
            method,
            self._url(table_id, range_, suffix),
            params=params,
            json=body,
            timeout=self._timeout,
        )
        if not 200 <= resp.status_code < 300:
            raise SheetsApiError(resp.status_code, _error_message(resp))
        if not resp.content:
            return {}
        return resp.json()


def _error_message(resp: requests.Response) -> str:
    try:
        return resp.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return resp.text or resp.reason or "unknown error"
