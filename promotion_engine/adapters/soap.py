"""
SOAP adapter.

Wraps the request parameters in a SOAP 1.1 envelope and reads a fixed set of
result fields (conditionResult, discountAmount, promotionName, promotionType,
description) from the answer by local element name. This is a narrow
integration for promotion services, not a general SOAP client: no WSDL, no
WS-Security, no multi-part messages.
"""

import json
import logging
import re
import time
import xml.etree.ElementTree as ET
from typing import Any, Mapping, Optional

import httpx

from promotion_engine.adapters.base import (
    ExternalSystemAdapter,
    ExternalSystemRequest,
    ExternalSystemResponse,
)
from promotion_engine.adapters.http import decode_body, send_with_deadline
from promotion_engine.config import get_settings
from promotion_engine.exceptions import TransportError

logger = logging.getLogger(__name__)

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
DEFAULT_NAMESPACE = "http://promotion.bank.com/"
RESULT_FIELDS = ("conditionResult", "discountAmount", "promotionName", "promotionType", "description")

_XML_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*$")

ET.register_namespace("soap", SOAP_ENV_NS)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _xml_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def build_envelope(parameters: Mapping[str, Any], namespace: str, operation: str) -> str:
    """Serialize parameters as child elements of <operation> inside a SOAP body."""
    envelope = ET.Element(f"{{{SOAP_ENV_NS}}}Envelope")
    ET.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Header")
    body = ET.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Body")
    operation_el = ET.SubElement(body, f"{{{namespace}}}{operation}")
    for key, value in parameters.items():
        if not _XML_NAME.match(key):
            logger.debug("Skipping parameter %r: not a valid XML element name", key)
            continue
        child = ET.SubElement(operation_el, f"{{{namespace}}}{key}")
        child.text = _xml_text(value)
    return ET.tostring(envelope, encoding="unicode")


def parse_envelope(text: str) -> tuple[dict[str, Any], Optional[str]]:
    """Return (result fields, fault message or None). Raises ET.ParseError on malformed XML."""
    root = ET.fromstring(text)
    data: dict[str, Any] = {}
    fault: Optional[str] = None
    for element in root.iter():
        name = _local_name(element.tag)
        if name == "Fault":
            fault_text = None
            for part in element.iter():
                if _local_name(part.tag) in ("faultstring", "Text", "Reason") and (part.text or "").strip():
                    fault_text = part.text.strip()
                    break
            fault = fault_text or "SOAP Fault"
        elif name in RESULT_FIELDS and name not in data:
            data[name] = (element.text or "").strip()
    return data, fault


class SoapAdapter(ExternalSystemAdapter):
    """
    SOAP 1.1 over HTTP POST.

    Parameters: `namespace` (target namespace), `operation` (request element,
    default PromotionRequest), `soapAction`, `headers`.
    """

    adapter_type = "SOAP"

    def __init__(
        self,
        endpoint: str,
        parameters: Optional[Mapping[str, Any]] = None,
        client: Optional[httpx.Client] = None,
    ):
        super().__init__(endpoint)
        params = dict(parameters or {})
        self.namespace = str(params.get("namespace") or DEFAULT_NAMESPACE)
        self.operation = str(params.get("operation") or "PromotionRequest")
        if not _XML_NAME.match(self.operation):
            raise ValueError(f"Invalid SOAP operation name '{self.operation}'")
        self.soap_action = str(params.get("soapAction") or "")
        self.headers = {str(k): str(v) for k, v in (params.get("headers") or {}).items()}
        self._owns_client = client is None
        self._client = client or httpx.Client()

    def call(self, request: ExternalSystemRequest, timeout: float) -> ExternalSystemResponse:
        start = time.perf_counter()
        envelope = build_envelope(request.parameters, self.namespace, self.operation)
        headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "SOAPAction": f'"{self.soap_action}"',
            **self.headers,
            **request.headers,
            "X-Request-ID": request.request_id,
        }
        http_request = self._client.build_request(
            "POST",
            self.endpoint,
            content=envelope.encode("utf-8"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
        )
        response, body = send_with_deadline(self._client, http_request, timeout, self.adapter_type)
        elapsed_ms = (time.perf_counter() - start) * 1000
        text = decode_body(response, body)

        try:
            data, fault = parse_envelope(text) if text.strip() else ({}, None)
        except ET.ParseError as exc:
            if not response.is_success:
                return ExternalSystemResponse.failed(
                    f"SOAP HTTP {response.status_code} from {self.endpoint}",
                    status_code=response.status_code,
                    execution_time_ms=elapsed_ms,
                    data={"body": text},
                )
            raise TransportError(
                f"Malformed SOAP response from {self.endpoint}: {exc}",
                system_type=self.adapter_type,
                endpoint=self.endpoint,
                status_code=response.status_code,
                body=text[:1000],
            ) from exc

        if fault or not response.is_success:
            return ExternalSystemResponse.failed(
                fault or f"SOAP HTTP {response.status_code} from {self.endpoint}",
                status_code=response.status_code,
                execution_time_ms=elapsed_ms,
                data=data,
            )
        return ExternalSystemResponse.ok(data, response.status_code, elapsed_ms)

    def is_available(self) -> bool:
        try:
            response = self._client.head(self.endpoint, timeout=get_settings().http_availability_timeout)
        except httpx.HTTPError as exc:
            logger.debug("Availability check failed for %s: %s", self.endpoint, exc)
            return False
        return response.status_code < 500

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
