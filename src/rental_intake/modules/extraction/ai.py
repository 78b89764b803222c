from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from rental_intake.core.config import settings

SCHEMA_VERSION = 1

_DOCUMENT_KINDS = ["check-in", "check-out", "control-file", "unknown"]
_PLATFORMS = ["airbnb", "booking", "expedia", "vrbo", "direct", "other"]

_NULLABLE_STRING = {"type": ["string", "null"]}

_RESERVATION_ITEM_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "guest_name": _NULLABLE_STRING,
        "property_name": _NULLABLE_STRING,
        "check_in_date": _NULLABLE_STRING,
        "check_out_date": _NULLABLE_STRING,
        "num_guests": {"type": ["integer", "null"]},
        "total_amount": _NULLABLE_STRING,
        "platform": {"anyOf": [{"type": "string", "enum": _PLATFORMS}, {"type": "null"}]},
        "guest_email": _NULLABLE_STRING,
        "guest_phone": _NULLABLE_STRING,
        "reference": _NULLABLE_STRING,
        "page": {"type": ["integer", "null"]},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
    },
    "required": [
        "guest_name",
        "property_name",
        "check_in_date",
        "check_out_date",
        "num_guests",
        "total_amount",
        "platform",
        "guest_email",
        "guest_phone",
        "reference",
        "page",
        "confidence",
    ],
}

RESERVATIONS_RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "reservation_extraction",
        "strict": True,
        "schema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "document_kind": {"type": "string", "enum": _DOCUMENT_KINDS},
                "reservations": {"type": "array", "items": _RESERVATION_ITEM_SCHEMA},
            },
            "required": ["document_kind", "reservations"],
        },
    },
}

_SYSTEM_PROMPT = (
    "You extract vacation-rental reservations from check-in sheets, check-out sheets "
    "and multi-reservation control files.\n"
    "Only use information explicitly present in the document. Never guess.\n"
    "If a field is not clearly present, return null for it.\n"
    "Return JSON only."
)

_USER_PROMPT = (
    "Extract every reservation in this document.\n"
    "Return JSON with this exact shape:\n"
    "{\n"
    '  "document_kind": one_of[' + ", ".join(_DOCUMENT_KINDS) + "],\n"
    '  "reservations": [{"guest_name": string|null, "property_name": string|null, '
    '"check_in_date": "YYYY-MM-DD"|null, "check_out_date": "YYYY-MM-DD"|null, '
    '"num_guests": integer|null, "total_amount": string|null, '
    '"platform": one_of[' + ", ".join(_PLATFORMS) + "]|null, "
    '"guest_email": string|null, "guest_phone": string|null, "reference": string|null, '
    '"page": integer|null, "confidence": number}]\n'
    "}\n\n"
    "Rules:\n"
    "- One entry per reservation row. A control file usually lists several.\n"
    "- A check-in sheet (\"Entradas\") gives arrival dates; a check-out sheet (\"Saídas\") "
    "gives departure dates. Leave the other date null.\n"
    "- Copy the property/accommodation name (\"Alojamento\") exactly as written.\n"
    "- total_amount is the amount charged for the stay, digits only with the original "
    "decimal separator.\n"
    "- num_guests is adults plus children.\n"
    "- page is the 1-based page the row was read from.\n"
    "- confidence is your certainty in the row as a whole (0 to 1).\n"
)


class ProviderError(Exception):
    def __init__(self, reason: str, *, transient: bool, retry_after: float | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.transient = transient
        self.retry_after = retry_after


@dataclass(frozen=True)
class ExtractionRequest:
    text: str | None = None
    file_data_url: str | None = None
    filename: str | None = None
    is_image: bool = False


class ExtractionProvider(Protocol):
    name: str
    model: str

    def extract_reservations(self, request: ExtractionRequest) -> dict[str, Any]: ...


class OpenAIExtractionProvider:
    """Chat-completions client for any OpenAI-compatible endpoint."""

    name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout_seconds: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.base_url = (base_url or settings.openai_base_url).rstrip("/")
        self.model = model or settings.openai_model
        self.timeout_seconds = float(timeout_seconds or settings.provider_timeout_seconds)
        self._client = client or httpx.Client(timeout=self.timeout_seconds, follow_redirects=True)

    def close(self) -> None:
        self._client.close()

    def extract_reservations(self, request: ExtractionRequest) -> dict[str, Any]:
        if not self.api_key:
            raise ProviderError("provider_not_configured", transient=False)

        payload: dict[str, Any] = {
            "model": self.model,
            "temperature": 0,
            "response_format": RESERVATIONS_RESPONSE_FORMAT,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": _user_content(request)},
            ],
        }

        try:
            resp = self._post(payload)
        except ProviderError as e:
            # Some models/endpoints don't support Structured Outputs; fall back to JSON mode.
            if e.reason not in {"http_400", "http_422"}:
                raise
            payload["response_format"] = {"type": "json_object"}
            resp = self._post(payload)

        try:
            raw = resp.json()
            msg = raw["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError("malformed_response", transient=False) from e

        if isinstance(msg, dict) and msg.get("refusal"):
            raise ProviderError("refused", transient=False)
        content = msg.get("content") if isinstance(msg, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise ProviderError("empty_response", transient=False)

        obj = parse_json_object(content)
        if not isinstance(obj, dict):
            raise ProviderError("malformed_response", transient=False)
        return obj

    def _post(self, payload: dict[str, Any]) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        url = self.base_url + "/chat/completions"
        try:
            resp = self._client.post(
                url, headers=headers, json=payload, timeout=self.timeout_seconds
            )
            resp.raise_for_status()
        except httpx.TimeoutException as e:
            raise ProviderError("timeout", transient=True) from e
        except httpx.TransportError as e:
            raise ProviderError("network_error", transient=True) from e
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            transient = code == 429 or code >= 500
            raise ProviderError(
                f"http_{code}",
                transient=transient,
                retry_after=_retry_after_seconds(e.response),
            ) from e
        return resp


def _user_content(request: ExtractionRequest) -> list[dict[str, Any]] | str:
    if request.text is not None and not request.file_data_url:
        return _USER_PROMPT + "\nDocument text:\n" + request.text

    parts: list[dict[str, Any]] = [{"type": "text", "text": _USER_PROMPT}]
    if request.text:
        parts.append({"type": "text", "text": "Document text:\n" + request.text})
    if request.file_data_url:
        if request.is_image:
            parts.append({"type": "image_url", "image_url": {"url": request.file_data_url}})
        else:
            parts.append(
                {
                    "type": "file",
                    "file": {
                        "filename": request.filename or "document.pdf",
                        "file_data": request.file_data_url,
                    },
                }
            )
    return parts


def _retry_after_seconds(response: httpx.Response | None) -> float | None:
    if response is None:
        return None
    raw = response.headers.get("retry-after")
    if not raw:
        return None
    try:
        value = float(raw.strip())
    except ValueError:
        return None
    return value if value >= 0 else None


def parse_json_object(content: str) -> Any:
    c = (content or "").strip()
    if not c:
        return None
    try:
        return json.loads(c)
    except ValueError:
        pass

    # Fallback: extract the first {...} block (models sometimes wrap JSON in prose/fences).
    m = re.search(r"\{.*\}", c, re.S)
    if not m:
        return None
    try:
        return json.loads(m.group(0))
    except ValueError:
        return None
