"""
REST gateway client.

Submits batch lists and waits for them to commit:

    POST {url}/batches                    body: BatchList bytes
    GET  {url}/batch_statuses?id=..&wait  {"data": [{"id", "status", "invalid_transactions"}]}

and reads products back from the off-ledger replica:

    GET  {url}/product
    GET  {url}/product/{product_id}
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from gridledger.errors import SubmissionError
from gridledger.ledger.batch import BatchList

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
POLL_INTERVAL = 1.0

STATUS_COMMITTED = "COMMITTED"
STATUS_INVALID = "INVALID"


class GridClient:
    """
    Thin requests wrapper around the REST gateway.

    Usage:
        client = GridClient("http://localhost:8000")
        statuses = client.submit_batches(batch_list, wait=30)
    """

    def __init__(
        self,
        url: str,
        session: Optional[requests.Session] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.url}/{path.lstrip('/')}"
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as err:
            raise SubmissionError(f"Request to {url} failed: {err}") from err

        if not 200 <= response.status_code < 300:
            raise SubmissionError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}"
            )
        try:
            return response.json()
        except ValueError as err:
            raise SubmissionError(f"{method} {url} returned a non-JSON body") from err

    def post_batches(self, batch_list: BatchList) -> str:
        """Post a batch list; returns the status link reported by the gateway."""
        body = self._request(
            "POST",
            "batches",
            data=batch_list.to_bytes(),
            headers={"Content-Type": "application/octet-stream"},
        )
        if not isinstance(body, dict) or "link" not in body:
            raise SubmissionError("Gateway response is missing the status link")
        logger.info("Submitted %d batch(es): %s", len(batch_list.batches), body["link"])
        return body["link"]

    def batch_statuses(self, batch_ids: List[str], wait: int = 0) -> List[Dict[str, Any]]:
        body = self._request(
            "GET",
            "batch_statuses",
            params={"id": ",".join(batch_ids), "wait": wait},
        )
        if not isinstance(body, dict) or not isinstance(body.get("data"), list):
            raise SubmissionError("Gateway returned malformed batch statuses")
        return body["data"]

    def wait_for_batches(self, batch_ids: List[str], wait: int) -> List[Dict[str, Any]]:
        """
        Poll until every batch is committed or wait seconds have passed.

        Raises:
            SubmissionError: A batch is invalid, or the wait expired first
        """
        deadline = time.monotonic() + wait
        while True:
            remaining = max(0, int(deadline - time.monotonic()))
            statuses = self.batch_statuses(batch_ids, wait=remaining)

            invalid = [s for s in statuses if s.get("status") == STATUS_INVALID]
            if invalid:
                messages = [
                    t.get("message", "")
                    for s in invalid
                    for t in s.get("invalid_transactions", [])
                ]
                raise SubmissionError("Batch rejected: " + "; ".join(m for m in messages if m))

            if statuses and all(s.get("status") == STATUS_COMMITTED for s in statuses):
                logger.info("Committed %d batch(es)", len(statuses))
                return statuses

            if time.monotonic() >= deadline:
                pending = [s.get("id", "")[:16] for s in statuses if s.get("status") != STATUS_COMMITTED]
                raise SubmissionError(f"Timed out waiting for batch(es) to commit: {', '.join(pending)}")
            time.sleep(min(POLL_INTERVAL, max(deadline - time.monotonic(), 0)))

    def submit_batches(self, batch_list: BatchList, wait: int = 0) -> List[Dict[str, Any]]:
        """
        Submit a batch list, optionally waiting for it to commit.

        Returns:
            Final batch statuses when waiting, otherwise an empty list
        """
        self.post_batches(batch_list)
        if wait <= 0:
            return []
        return self.wait_for_batches(batch_list.batch_ids, wait)

    def list_products(self) -> List[Dict[str, Any]]:
        products = self._request("GET", "product")
        if not isinstance(products, list):
            raise SubmissionError("Gateway returned a malformed product list")
        return products

    def fetch_product(self, product_id: str) -> Dict[str, Any]:
        product = self._request("GET", f"product/{quote(product_id, safe='')}")
        if not isinstance(product, dict):
            raise SubmissionError("Gateway returned a malformed product")
        return product
