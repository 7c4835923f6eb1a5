"""Machine registry client: GET one machine by id or code with a hard timeout. Never hangs."""
import logging
from urllib.parse import quote

import httpx

from coinpulse.core.errors import MachineLookupError
from coinpulse.services.machines.types import ResolvedMachine, normalize_code

logger = logging.getLogger(__name__)


class HttpMachineDirectory:
    """Remote machine registry. 404 means unknown machine; timeouts and 5xx raise MachineLookupError."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _get(self, path: str) -> dict | None:
        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as c:
                r = c.get(url, headers={"Accept": "application/json"})
        except httpx.TimeoutException as e:
            logger.warning("Machine registry timed out after %ss: %s", self.timeout, url)
            raise MachineLookupError("Machine registry timed out", url=url) from e
        except httpx.HTTPError as e:
            logger.warning("Machine registry unreachable: %s (%s)", url, e)
            raise MachineLookupError("Machine registry unreachable", url=url) from e
        if r.status_code == 404:
            return None
        if not r.is_success:
            raise MachineLookupError(
                f"Machine registry error: {r.status_code}",
                url=url,
                detail=(r.text[:500] if r.text else None),
            )
        try:
            return r.json()
        except ValueError as e:
            raise MachineLookupError("Machine registry returned invalid JSON", url=url) from e

    def resolve(
        self,
        machine_id: int | None = None,
        machine_code: str | None = None,
    ) -> ResolvedMachine | None:
        if machine_id is not None:
            payload = self._get(f"/machines/{machine_id}")
        elif machine_code:
            payload = self._get(f"/machines/by-code/{quote(normalize_code(machine_code))}")
        else:
            return None
        if payload is None:
            return None
        try:
            return ResolvedMachine.from_payload(payload)
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise MachineLookupError("Machine registry returned an unexpected document") from e
