"""
Remote signing of assembled reports.

The report itself never leaves the server: a SHA-256 digest of its canonical
JSON is sent to the signing service, which answers with the signature and
the certificate it used.
"""

import hashlib
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

import requests

from app.core.config import settings

logger = logging.getLogger(__name__)


class SigningError(Exception):
    """The signing service could not produce a signature"""


class SigningNotConfigured(SigningError):
    pass


def _json_default(value: Any):
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"Unserializable value in report: {value!r}")


def report_digest(report: Dict[str, Any]) -> str:
    """Hex SHA-256 of the report with sorted keys and no whitespace"""
    canonical = json.dumps(report, sort_keys=True, separators=(",", ":"), default=_json_default, ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class RemoteSigningClient:
    """Thin client for the signing service's /signing/remote endpoint"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url if base_url is not None else settings.SIGNING_SERVICE_URL
        self.api_key = api_key if api_key is not None else settings.SIGNING_API_KEY
        self.timeout = timeout if timeout is not None else settings.SIGNING_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _post_json(self, payload: Dict[str, Any]) -> dict:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        r = self.session.post(
            f"{self.base_url.rstrip('/')}/signing/remote",
            json=payload,
            headers=headers,
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()

    def sign(self, report: Dict[str, Any], store_id: int) -> Dict[str, Any]:
        if not self.base_url:
            raise SigningNotConfigured("Signing service URL is not configured")

        digest = report_digest(report)
        payload = {"digest": digest, "algorithm": "SHA-256", "store_id": store_id}

        try:
            body = self._post_json(payload)
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Remote signing failed for store {store_id}: {e}")
            raise SigningError(f"Signing service error: {e}") from e

        if not isinstance(body, dict):
            raise SigningError("Signing service returned an invalid response")
        missing = [k for k in ("signer_name", "signature_value", "cert_serial") if not body.get(k)]
        if missing:
            raise SigningError(f"Signing service response is missing {', '.join(missing)}")

        logger.info(f"Report signed for store {store_id} by {body['signer_name']} (cert {body['cert_serial']})")
        return {
            "signer_name": body["signer_name"],
            "signature_value": body["signature_value"],
            "cert_serial": body["cert_serial"],
            "timestamp": body.get("timestamp") or datetime.utcnow().isoformat(),
            "digest": digest,
        }
