from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

import requests
from pydantic import ValidationError

from exceptions import (
    UpstreamError,
    UpstreamMalformed,
    UpstreamNotFound,
    UpstreamRateLimited,
    UpstreamRejected,
    UpstreamUnavailable,
)
from metrics import metrics
from models import Contract, PaymentRecord, Payslip, PeriodWindow, Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 50


class Page(list):
    """One page of provider records, with the provider's total row count when reported."""

    def __init__(
        self,
        records: Iterable[Any] = (),
        total_rows: Optional[int] = None,
        raw_length: Optional[int] = None,
    ) -> None:
        super().__init__(records)
        self.total_rows = total_rows
        # Rows the provider returned, including any skipped as invalid.
        self.raw_length = len(self) if raw_length is None else raw_length


class DeelClient:
    """
    Payroll data provider client.

    Owns authentication, retries and response normalization so callers always
    receive either typed records or a typed UpstreamError.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30,
        max_retries: int = 3,
        contracts_path: str = "/contracts",
        payments_path: str = "/reports/detailed-payments",
        payslips_path: str = "/reports/detailed-payslips",
        backoff_base: float = 1.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.contracts_path = contracts_path
        self.payments_path = payments_path
        self.payslips_path = payslips_path
        self.backoff_base = backoff_base
        self.session = requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeelClient":
        return cls(
            base_url=settings.DEEL_API_BASE_URL,
            api_key=settings.DEEL_API_KEY or "",
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            max_retries=settings.MAX_RETRIES,
            contracts_path=settings.CONTRACTS_PATH,
            payments_path=settings.PAYMENTS_PATH,
            payslips_path=settings.PAYSLIPS_PATH,
        )

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        """Prefer the provider's errors[0].message, fall back to the status code."""
        try:
            body = response.json()
            return body["errors"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError):
            return f"API error: {response.status_code}"

    def _translate_http_error(self, response: requests.Response, path: str) -> UpstreamError:
        status = response.status_code
        message = self._error_message(response)
        if status == 429:
            return UpstreamRateLimited(message, endpoint=path, status_code=status)
        if status >= 500:
            return UpstreamUnavailable(message, endpoint=path, status_code=status)
        if status == 404:
            return UpstreamNotFound(message, endpoint=path, status_code=status)
        return UpstreamRejected(message, endpoint=path, status_code=status)

    def _request_once(self, path: str, params: Optional[Dict[str, Any]]) -> requests.Response:
        url = f"{self.base_url}{path}"
        start = time.time()
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.Timeout as e:
            metrics.record_api_request(path, "timeout", time.time() - start)
            raise UpstreamUnavailable(f"Request timed out: {e}", endpoint=path) from e
        except requests.RequestException as e:
            metrics.record_api_request(path, "error", time.time() - start)
            raise UpstreamUnavailable(
                f"Failed to reach payroll provider: {e}", endpoint=path
            ) from e

        metrics.record_api_request(path, str(response.status_code), time.time() - start)
        if response.status_code >= 400:
            raise self._translate_http_error(response, path)
        return response

    def _make_request_with_retry(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> requests.Response:
        """
        HTTP GET with exponential backoff for timeouts, network errors, 429 and 5xx.
        Authentication and not-found errors are raised immediately.
        """
        for attempt in range(self.max_retries):
            try:
                return self._request_once(path, params)
            except UpstreamError as e:
                if not e.retryable or attempt == self.max_retries - 1:
                    logger.error(
                        "Request to %s failed after %d attempt(s): %s",
                        path,
                        attempt + 1,
                        e,
                    )
                    raise
                wait_time = self.backoff_base * 2**attempt
                logger.warning(
                    "Request error (attempt %d/%d): %s. Retrying in %ss...",
                    attempt + 1,
                    self.max_retries,
                    e,
                    wait_time,
                )
                time.sleep(wait_time)

        raise UpstreamUnavailable("Request failed for unknown reason", endpoint=path)

    @staticmethod
    def _extract_rows(body: Any, path: str) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        """Accept either a bare list or a {"data": [...]} envelope."""
        total_rows = None
        if isinstance(body, dict):
            page_info = body.get("page")
            if isinstance(page_info, dict) and isinstance(page_info.get("total_rows"), int):
                total_rows = page_info["total_rows"]
            body = body.get("data")
        if not isinstance(body, list):
            raise UpstreamMalformed(
                "Expected a list of records or a 'data' list in the response", endpoint=path
            )
        if not all(isinstance(row, dict) for row in body):
            raise UpstreamMalformed("Response records must be JSON objects", endpoint=path)
        return body, total_rows

    def _get_rows(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        response = self._make_request_with_retry(path, params)
        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamMalformed(f"Response is not valid JSON: {e}", endpoint=path) from e
        return self._extract_rows(body, path)

    @staticmethod
    def _to_contract(row: Dict[str, Any]) -> Contract:
        worker = row.get("worker") or {}
        return Contract(
            id=str(row["id"]),
            display_name=row.get("name"),
            worker_name=worker.get("full_name"),
            role_title=row.get("job_title_name"),
            status=row.get("status"),
            contract_type=row.get("contract_type"),
            worker_country=worker.get("country") or row.get("country"),
        )

    @staticmethod
    def _to_payment(row: Dict[str, Any]) -> PaymentRecord:
        occurred_at = next(
            (row[k] for k in ("paid_at", "payment_date", "date", "created_at") if row.get(k)),
            None,
        )
        return PaymentRecord(
            contract_id=str(row["contract_id"]),
            amount=row.get("amount"),
            currency=row.get("currency"),
            occurred_at=occurred_at,
            status=row.get("status"),
            contract_name=row.get("contract_name"),
        )

    @staticmethod
    def _to_payslip(row: Dict[str, Any]) -> Payslip:
        worker = row.get("worker") or {}
        return Payslip(
            contract_id=row.get("contract_id"),
            worker_country=worker.get("country") or row.get("country") or row.get("worker_country"),
            cycle_start=row.get("cycle_start") or row.get("start_date"),
        )

    @staticmethod
    def _window_params(window: PeriodWindow, offset: int, limit: int) -> Dict[str, Any]:
        return {
            "limit": limit,
            "offset": offset,
            "from_date": window.start.isoformat(),
            "to_date": window.end.isoformat(),
        }

    def list_contracts(self) -> List[Contract]:
        """
        Fetch the full contract roster.

        Any failure propagates: without contracts there is no classification basis.
        """
        rows, _ = self._get_rows(self.contracts_path)
        try:
            contracts = [self._to_contract(row) for row in rows]
        except (AttributeError, KeyError, TypeError, ValidationError) as e:
            raise UpstreamMalformed(
                f"Invalid contract record in roster: {e}", endpoint=self.contracts_path
            ) from e
        logger.info("Fetched %d contracts", len(contracts))
        return contracts

    def list_payments(self, window: PeriodWindow, offset: int, limit: int) -> Page:
        """Fetch one page of payment records dated within `window`."""
        logger.info("Fetching payments for %s: offset=%d limit=%d", window.label, offset, limit)
        rows, total_rows = self._get_rows(
            self.payments_path, self._window_params(window, offset, limit)
        )
        payments: List[PaymentRecord] = []
        for row in rows:
            try:
                payments.append(self._to_payment(row))
            except (AttributeError, KeyError, TypeError, ValidationError) as exc:
                logger.warning("Skipping invalid payment record: %s", exc)
        return Page(payments, total_rows=total_rows, raw_length=len(rows))

    def list_payslips(self, window: PeriodWindow, offset: int, limit: int) -> Page:
        """Fetch one page of payslips for the report cycle covered by `window`."""
        rows, total_rows = self._get_rows(
            self.payslips_path, self._window_params(window, offset, limit)
        )
        payslips: List[Payslip] = []
        for row in rows:
            try:
                payslips.append(self._to_payslip(row))
            except (AttributeError, TypeError, ValidationError) as exc:
                logger.warning("Skipping invalid payslip record: %s", exc)
        return Page(payslips, total_rows=total_rows, raw_length=len(rows))

    def __enter__(self) -> "DeelClient":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit with session cleanup."""
        self.close()

    def close(self) -> None:
        """Close the requests session."""
        if hasattr(self, "session") and self.session:
            try:
                self.session.close()
            except requests.RequestException as e:
                logger.warning("Error closing session: %s", e)


class PageCollection(Generic[T]):
    """Records gathered by a PaginatedFetcher and how the pagination ended."""

    def __init__(self) -> None:
        self.records: List[T] = []
        self.requests_made = 0
        self.error: Optional[UpstreamError] = None

    @property
    def complete(self) -> bool:
        return self.error is None

    def __len__(self) -> int:
        return len(self.records)


class PaginatedFetcher(Generic[T]):
    """
    Drives an offset/limit paging API to exhaustion.

    Pagination ends on an empty page, a page shorter than `page_size`, or once
    the provider's reported total has been reached. A failing page stops
    pagination and the records accumulated so far are returned together with
    the error.
    """

    def __init__(
        self,
        fetch_page: Callable[[int, int], List[T]],
        page_size: int = DEFAULT_PAGE_SIZE,
        label: str = "records",
    ) -> None:
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.fetch_page = fetch_page
        self.page_size = page_size
        self.label = label

    def fetch_all(self) -> PageCollection[T]:
        collection: PageCollection[T] = PageCollection()
        offset = 0

        while True:
            logger.debug(
                "Fetching %s page at offset %d (limit %d)", self.label, offset, self.page_size
            )
            try:
                page = self.fetch_page(offset, self.page_size)
            except UpstreamError as e:
                collection.error = e
                logger.warning(
                    "Pagination of %s aborted at offset %d after %d records: %s",
                    self.label,
                    offset,
                    len(collection.records),
                    e,
                )
                break
            collection.requests_made += 1

            page_length = getattr(page, "raw_length", len(page))
            collection.records.extend(page)
            offset += page_length

            if page_length == 0 or page_length < self.page_size:
                break
            total_rows = getattr(page, "total_rows", None)
            if total_rows is not None and offset >= total_rows:
                break

        logger.info(
            "Fetched %d %s in %d request(s)",
            len(collection.records),
            self.label,
            collection.requests_made,
        )
        return collection
