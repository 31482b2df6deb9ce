"""
XFX Invoice Hub - Workflow Engine Transport

Performs one outbound call to the workflow engine and returns a normalized
result. Never raises: every failure becomes a TransportError with a kind the
orchestrator can report on:

- network: no response received (DNS, refused connection, timeout)
- http: response received with a status outside 200-299
- parse: 2xx response whose body is not valid JSON

The active relay (direct, CORS proxy or forwarding function) is hidden from
callers.
"""

import json
import logging
import httpx
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, Tuple, Union

from .xfx_config import XFXConfig, RelayMode, XFX_REQUEST_TIMEOUT

logger = logging.getLogger(__name__)


class TransportErrorKind(str, Enum):
    NETWORK = "network"
    HTTP = "http"
    PARSE = "parse"


@dataclass
class TransportError:
    """Typed transport failure."""
    kind: str
    detail: str
    status_code: Optional[int] = None
    body_text: Optional[str] = None
    body: Any = None


@dataclass
class TransportResult:
    """Outcome of one call: parsed body on success, error otherwise."""
    data: Any = None
    status_code: Optional[int] = None
    error: Optional[TransportError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class MultipartBody:
    """Form fields plus files, sent as multipart/form-data."""
    fields: Dict[str, str] = field(default_factory=dict)
    files: Dict[str, Tuple[str, bytes, str]] = field(default_factory=dict)


Payload = Union[Dict[str, Any], MultipartBody]


# =============================================================================
# RELAYS
# =============================================================================

class DirectRelay:
    """Call the address as-is."""

    def route(self, address: str) -> Tuple[str, Dict[str, str], Dict[str, str]]:
        return address, {}, {}


class CorsProxyRelay:
    """Prefix the address with a CORS proxy."""

    def __init__(self, proxy_url: str):
        self.proxy_url = proxy_url

    def route(self, address: str) -> Tuple[str, Dict[str, str], Dict[str, str]]:
        return self.proxy_url + address, {"X-Requested-With": "XMLHttpRequest"}, {}


class ForwardingRelay:
    """
    Send everything to a forwarding function, naming the real target
    in the payload under `target_field`.
    """

    def __init__(self, forwarding_url: str, target_field: str = "resumeUrl"):
        self.forwarding_url = forwarding_url
        self.target_field = target_field

    def route(self, address: str) -> Tuple[str, Dict[str, str], Dict[str, str]]:
        return self.forwarding_url, {}, {self.target_field: address}


def build_relay(config: XFXConfig):
    """Pick the relay for the configured mode."""
    if config.relay_mode == RelayMode.CORS_PROXY.value:
        return CorsProxyRelay(config.cors_proxy_url)
    if config.relay_mode == RelayMode.FORWARDING.value:
        if not config.forwarding_url:
            logger.warning("XFX_FORWARDING_URL not set, falling back to direct relay")
            return DirectRelay()
        return ForwardingRelay(config.forwarding_url, config.forwarding_field)
    return DirectRelay()


# =============================================================================
# TRANSPORT
# =============================================================================

def _parse_body(text: str) -> Tuple[Any, bool]:
    """Return (parsed, ok). Empty bodies parse to an empty mapping."""
    if not text or not text.strip():
        return {}, True
    try:
        return json.loads(text), True
    except ValueError:
        return None, False


class XFXTransport:
    """
    Transport adapter for the workflow engine.

    Usage:
        transport = XFXTransport(relay=DirectRelay())
        result = await transport.send(url, {"action": "start_process"})
        if result.ok:
            handle(result.data)
    """

    def __init__(
        self,
        relay=None,
        timeout: float = XFX_REQUEST_TIMEOUT,
        default_headers: Optional[Dict[str, str]] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.relay = relay or DirectRelay()
        self.timeout = timeout
        self.default_headers = default_headers or {}
        self._http_transport = http_transport

    @classmethod
    def from_config(cls, config: XFXConfig, http_transport=None) -> "XFXTransport":
        return cls(
            relay=build_relay(config),
            timeout=config.request_timeout,
            default_headers=config.default_headers,
            http_transport=http_transport,
        )

    async def send(self, address: str, payload: Payload) -> TransportResult:
        """POST a JSON mapping or MultipartBody to `address`."""
        url, relay_headers, relay_fields = self.relay.route(address)
        headers = {**self.default_headers, **relay_headers}

        request_kwargs: Dict[str, Any] = {"headers": headers}
        if isinstance(payload, MultipartBody):
            request_kwargs["data"] = {**payload.fields, **relay_fields}
            request_kwargs["files"] = payload.files
        else:
            request_kwargs["json"] = {**(payload or {}), **relay_fields}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._http_transport
            ) as client:
                resp = await client.post(url, **request_kwargs)
        except httpx.TimeoutException as e:
            logger.warning("XFX call to %s timed out: %s", url, str(e))
            return TransportResult(error=TransportError(
                kind=TransportErrorKind.NETWORK.value,
                detail=f"Request timed out after {self.timeout}s"
            ))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("XFX call to %s failed: %s", url, str(e))
            return TransportResult(error=TransportError(
                kind=TransportErrorKind.NETWORK.value,
                detail=str(e) or type(e).__name__
            ))
        except Exception as e:
            logger.error("XFX call to %s raised unexpectedly: %s", url, str(e))
            return TransportResult(error=TransportError(
                kind=TransportErrorKind.NETWORK.value,
                detail=str(e) or type(e).__name__
            ))

        text = resp.text
        parsed, parsed_ok = _parse_body(text)

        if not 200 <= resp.status_code < 300:
            logger.error("XFX call to %s returned %d - %s", url, resp.status_code, text[:300])
            return TransportResult(
                status_code=resp.status_code,
                error=TransportError(
                    kind=TransportErrorKind.HTTP.value,
                    detail=f"HTTP error! status: {resp.status_code}",
                    status_code=resp.status_code,
                    body_text=text,
                    body=parsed if parsed_ok else None,
                )
            )

        if not parsed_ok:
            logger.error("XFX response from %s is not valid JSON: %s", url, text[:200])
            return TransportResult(
                status_code=resp.status_code,
                error=TransportError(
                    kind=TransportErrorKind.PARSE.value,
                    detail="Response is not valid JSON",
                    status_code=resp.status_code,
                    body_text=text,
                )
            )

        logger.debug("XFX response from %s: %d", url, resp.status_code)
        return TransportResult(data=parsed, status_code=resp.status_code)
