from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit
from xml.etree import ElementTree
from xml.sax.saxutils import escape

import requests

from .config import SessionConfig
from .exceptions import SalesforceConnectionError, SalesforceFault

_logger = logging.getLogger(__name__)

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
PARTNER_NS = "urn:partner.soap.sforce.com"

# Per-call id limit of the composite retrieve endpoint
MAX_RETRIEVE_IDS = 2000

_LOGIN_ENVELOPE = """<?xml version="1.0" encoding="utf-8" ?>
<env:Envelope xmlns:xsd="http://www.w3.org/2001/XMLSchema"
    xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"
    xmlns:env="http://schemas.xmlsoap.org/soap/envelope/"
    xmlns:urn="urn:partner.soap.sforce.com">
  <env:Body>
    <urn:login>
      <urn:username>{username}</urn:username>
      <urn:password>{password}</urn:password>
    </urn:login>
  </env:Body>
</env:Envelope>"""


def format_sf_datetime(value: datetime) -> str:
    """Render a datetime the way the REST API expects it (UTC, seconds)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S+00:00")


def parse_sf_datetime(text: str) -> datetime:
    """Parse '2024-01-31T10:15:00.000+0000' (and the variants without millis or 'Z')."""
    raw = text.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+0000"
    for fmt in ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z"):
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    raise ValueError(f"Unrecognised Salesforce datetime: {text!r}")


@dataclass
class LoginResult:
    """What a successful SOAP login hands back."""

    session_id: str
    server_url: str
    instance_url: str
    user_info: Dict[str, str] = field(default_factory=dict)
    server_timestamp: Optional[datetime] = None


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _soap_fault(root: ElementTree.Element, status: Optional[int]) -> Optional[SalesforceFault]:
    fault = root.find(f".//{{{SOAP_ENV_NS}}}Fault")
    if fault is None:
        return None
    code = (fault.findtext("faultcode") or "UNKNOWN_EXCEPTION").strip()
    # "sf:INVALID_LOGIN" -> "INVALID_LOGIN"
    code = code.rsplit(":", 1)[-1]
    return SalesforceFault(code, (fault.findtext("faultstring") or "").strip(), status)


def _parse_login_response(text: str, status: int) -> Tuple[str, str, Dict[str, str]]:
    try:
        root = ElementTree.fromstring(text)
    except ElementTree.ParseError as e:
        raise SalesforceFault("INVALID_RESPONSE", f"Unparseable login response: {e}", status) from e

    fault = _soap_fault(root, status)
    if fault is not None:
        raise fault

    result = root.find(f".//{{{PARTNER_NS}}}result")
    if result is None:
        raise SalesforceFault("INVALID_RESPONSE", "Login response carries no result", status)

    session_id = result.findtext(f"{{{PARTNER_NS}}}sessionId")
    server_url = result.findtext(f"{{{PARTNER_NS}}}serverUrl")
    if not session_id or not server_url:
        raise SalesforceFault("INVALID_RESPONSE", "Login response lacks sessionId/serverUrl", status)

    user_info: Dict[str, str] = {}
    info = result.find(f"{{{PARTNER_NS}}}userInfo")
    if info is not None:
        for child in info:
            if child.text is not None:
                user_info[_local(child.tag)] = child.text
    return session_id, server_url, user_info


def _rest_fault(r: requests.Response) -> SalesforceFault:
    try:
        detail: Any = r.json()
    except ValueError:
        detail = r.text

    # REST errors are a list of {"errorCode", "message"}; OAuth ones a dict
    if isinstance(detail, list) and detail and isinstance(detail[0], dict):
        first = detail[0]
        return SalesforceFault(
            str(first.get("errorCode", "UNKNOWN_EXCEPTION")),
            str(first.get("message", "")),
            r.status_code,
        )
    if isinstance(detail, dict):
        return SalesforceFault(
            str(detail.get("errorCode") or detail.get("error") or "UNKNOWN_EXCEPTION"),
            str(detail.get("message") or detail.get("error_description") or ""),
            r.status_code,
        )
    return SalesforceFault(f"HTTP_{r.status_code}", str(detail)[:500], r.status_code)


class SalesforceAPI:
    """Salesforce session transport: SOAP login plus the REST data API.

    Holds no query state; every method maps onto one remote call (or one
    HTTP request) and either returns the decoded payload or raises.
    HTTP error responses are raised as :class:`SalesforceFault`; network
    level ``requests.RequestException`` propagates to the caller.
    """

    def __init__(self, cfg: SessionConfig) -> None:
        self.cfg = cfg
        self.session = requests.Session()
        self.session.headers.update(
            {"Accept-Encoding": "gzip" if cfg.use_compression else "identity"}
        )
        self.session_id: Optional[str] = None
        self.instance_url: Optional[str] = None
        self._proxies = cfg.proxies()

    # --------------------------- Session -----------------------------

    @property
    def base_url(self) -> str:
        if not self.instance_url:
            raise SalesforceConnectionError("Not connected; call login() first.")
        return f"{self.instance_url}/services/data/v{self.cfg.version}"

    def login_endpoint(self, url: str) -> str:
        url = url.rstrip("/")
        if "/services/Soap/" in url:
            return url
        return f"{url}/services/Soap/u/{self.cfg.version}"

    def login(self, url: str, username: str, password: str) -> LoginResult:
        """SOAP partner login; stores the session id as bearer token."""
        endpoint = self.login_endpoint(url)
        body = _LOGIN_ENVELOPE.format(username=escape(username), password=escape(password or ""))
        _logger.debug("Logging in at %s as %s", endpoint, username)

        r = self.session.post(
            endpoint,
            data=body.encode("utf-8"),
            headers={"Content-Type": "text/xml; charset=UTF-8", "SOAPAction": "login"},
            timeout=self.cfg.request_timeout(),
            proxies=self._proxies or None,
        )
        session_id, server_url, user_info = _parse_login_response(r.text, r.status_code)
        if r.status_code >= 400:
            raise SalesforceFault(f"HTTP_{r.status_code}", r.text[:500], r.status_code)

        parts = urlsplit(server_url)
        self.instance_url = f"{parts.scheme}://{parts.netloc}"
        self.session_id = session_id
        self.session.headers.update({"Authorization": f"Bearer {session_id}"})

        server_ts = None
        date_header = r.headers.get("Date")
        if date_header:
            try:
                server_ts = parsedate_to_datetime(date_header)
            except (TypeError, ValueError):
                _logger.debug("Ignoring unparseable Date header %r", date_header)

        return LoginResult(
            session_id=session_id,
            server_url=server_url,
            instance_url=self.instance_url,
            user_info=user_info,
            server_timestamp=server_ts,
        )

    def close(self) -> None:
        self.session.close()
        self.session_id = None
        self.instance_url = None

    # --------------------------- Schema ------------------------------

    def describe_global(self) -> List[Dict[str, Any]]:
        """Return the sobjects list of the global describe."""
        return self._get(f"{self.base_url}/sobjects").get("sobjects", [])

    def describe_object(self, name: str) -> Dict[str, Any]:
        return self._get(f"{self.base_url}/sobjects/{name}/describe")

    # --------------------------- Query -------------------------------

    def query(self, soql: str) -> Dict[str, Any]:
        return self._get(f"{self.base_url}/query", params={"q": soql})

    def query_all(self, soql: str) -> Dict[str, Any]:
        """Like query(), but includes archived and deleted rows."""
        return self._get(f"{self.base_url}/queryAll", params={"q": soql})

    def query_more(self, locator: str) -> Dict[str, Any]:
        """Fetch the next page; locator is a nextRecordsUrl or a bare locator id."""
        base = self.base_url
        if locator.startswith("/"):
            return self._get(f"{self.instance_url}{locator}")
        return self._get(f"{base}/query/{locator}")

    def get_updated(self, object_name: str, start: datetime, end: datetime) -> List[str]:
        payload = self._get(
            f"{self.base_url}/sobjects/{object_name}/updated/",
            params={"start": format_sf_datetime(start), "end": format_sf_datetime(end)},
        )
        return list(payload.get("ids") or [])

    def get_deleted(
        self, object_name: str, start: datetime, end: datetime
    ) -> List[Tuple[str, datetime]]:
        payload = self._get(
            f"{self.base_url}/sobjects/{object_name}/deleted/",
            params={"start": format_sf_datetime(start), "end": format_sf_datetime(end)},
        )
        return [
            (d["id"], parse_sf_datetime(d["deletedDate"]))
            for d in payload.get("deletedRecords") or []
        ]

    def retrieve(
        self, fields: Sequence[str], object_name: str, ids: Sequence[str]
    ) -> List[Optional[Dict[str, Any]]]:
        """One retrieve call; the result is aligned with ``ids`` (None for misses)."""
        if len(ids) > MAX_RETRIEVE_IDS:
            raise ValueError(f"retrieve accepts at most {MAX_RETRIEVE_IDS} ids, got {len(ids)}")
        return self._request(
            "POST",
            f"{self.base_url}/composite/sobjects/{object_name}",
            json={"ids": list(ids), "fields": list(fields)},
        ).json()

    # --------------------------- Writes ------------------------------

    def create(self, records: Sequence[Dict[str, Any]], all_or_none: bool = False) -> List[Any]:
        return self._request(
            "POST",
            f"{self.base_url}/composite/sobjects",
            json={"allOrNone": all_or_none, "records": list(records)},
        ).json()

    def update(self, records: Sequence[Dict[str, Any]], all_or_none: bool = False) -> List[Any]:
        return self._request(
            "PATCH",
            f"{self.base_url}/composite/sobjects",
            json={"allOrNone": all_or_none, "records": list(records)},
        ).json()

    def upsert(
        self,
        object_name: str,
        external_id_field: str,
        records: Sequence[Dict[str, Any]],
        all_or_none: bool = False,
    ) -> List[Any]:
        return self._request(
            "PATCH",
            f"{self.base_url}/composite/sobjects/{object_name}/{external_id_field}",
            json={"allOrNone": all_or_none, "records": list(records)},
        ).json()

    def delete(self, ids: Sequence[str], all_or_none: bool = False) -> List[Any]:
        return self._request(
            "DELETE",
            f"{self.base_url}/composite/sobjects",
            params={"ids": ",".join(ids), "allOrNone": "true" if all_or_none else "false"},
        ).json()

    # --------------------------- HTTP wrappers -----------------------

    def _get(self, url: str, *, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request("GET", url, params=params).json()

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> requests.Response:
        """Single request; HTTP errors become SalesforceFault."""
        _logger.debug("%s %s", method, url)
        r = self.session.request(
            method,
            url,
            params=params,
            json=json,
            timeout=self.cfg.request_timeout(),
            proxies=self._proxies or None,
        )
        if r.status_code < 400:
            return r

        fault = _rest_fault(r)
        _logger.error("HTTP %s error for %s: %s", r.status_code, url, fault)
        raise fault
