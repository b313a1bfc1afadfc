"""
REST API client for Google Compute Engine (v1 API).
"""

import logging
import time
from typing import Any, Dict, Iterator, List, Optional

import google.auth
import requests
from google.auth.transport.requests import AuthorizedSession

from errors import (
    ALREADY_EXISTS,
    NOT_FOUND,
    RESOURCE_IN_USE,
    Conflict,
    PlatformError,
    TransportFailure,
)
from models import OperationHandle, ResourceKind, ResourceRef

logger = logging.getLogger(__name__)

API_BASE = "https://compute.googleapis.com/compute/v1"
COMPUTE_SCOPE = "https://www.googleapis.com/auth/compute"


class ComputeRestClient:
    """REST client for the Compute Engine v1 API."""

    RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

    def __init__(
        self,
        project_id: str,
        timeout_s: int = 60,
        max_retries: int = 5,
        base_delay: float = 2.0,
        max_delay: float = 60.0,
    ):
        """
        Initialize the Compute Engine REST client.

        Args:
            project_id: GCP project ID
            timeout_s: Request timeout in seconds
            max_retries: Maximum number of retries for transient errors
            base_delay: Base delay for exponential backoff
            max_delay: Upper bound for a single backoff delay
        """
        self.project_id = project_id
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

        creds, _ = google.auth.default(scopes=[COMPUTE_SCOPE])
        self.session = AuthorizedSession(creds)

    def _url(self, path: str) -> str:
        """Construct full API URL from a project-relative path or absolute link."""
        if path.startswith("https://"):
            return path
        return f"{API_BASE}/projects/{self.project_id}/{path.lstrip('/')}"

    def resource_url(
        self, kind: ResourceKind, name: str = "", zone: Optional[str] = None
    ) -> str:
        """URL of a resource (or of its collection when name is empty)."""
        if kind.zonal:
            if not zone:
                raise ValueError(f"{kind.name.lower()} requires a zone")
            path = f"zones/{zone}/{kind.collection}"
        else:
            path = f"global/{kind.collection}"
        if name:
            path = f"{path}/{name}"
        return self._url(path)

    def machine_type_url(self, zone: str, machine_type: str) -> str:
        if machine_type.startswith("https://"):
            return machine_type
        return self._url(f"zones/{zone}/machineTypes/{machine_type}")

    def image_url(self, image: str) -> str:
        """
        Resolve an image reference to a self-link.

        Accepts a full self-link, a ``projects/<p>/global/images/<name>`` path,
        or a bare image name in this project.
        """
        if image.startswith("https://"):
            return image
        if image.startswith("projects/"):
            return f"{API_BASE}/{image}"
        return self._url(f"global/images/{image}")

    def _request_with_retry(
        self, method: str, url: str, deadline: Optional[float] = None, **kwargs
    ):
        """
        Execute HTTP request with exponential backoff retry for transient errors.

        Args:
            method: HTTP method (GET, POST, PATCH, DELETE)
            url: Request URL
            deadline: Optional ``time.monotonic()`` value; request timeouts and
                backoff sleeps are cut to it and no attempt starts after it
            **kwargs: Additional request parameters

        Returns:
            The final response (may carry a non-retryable error status)

        Raises:
            TransportFailure: If max retries exceeded or the deadline passed
        """
        last_error = None

        for attempt in range(self.max_retries + 1):
            timeout = self.timeout_s
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0 and attempt > 0:
                    break
                timeout = min(timeout, max(remaining, 1.0))

            try:
                resp = self.session.request(method.upper(), url, timeout=timeout, **kwargs)
            except requests.exceptions.RequestException as e:
                last_error = str(e)
                delay = self._calculate_delay(attempt)
                log_line = f"Request error: {e}"
            else:
                if resp.status_code not in self.RETRYABLE_STATUS_CODES:
                    return resp
                error_info = self._error_message(resp)
                last_error = f"HTTP {resp.status_code}: {error_info}"
                delay = self._calculate_delay(attempt, resp)
                log_line = f"Retryable error {resp.status_code} ({error_info})"

            if attempt == self.max_retries:
                logger.warning(
                    f"{log_line}, attempt {attempt + 1}/{self.max_retries + 1}, giving up"
                )
                break
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning(f"{log_line}, deadline reached, giving up")
                    break
                delay = min(delay, remaining)
            logger.warning(
                f"{log_line}, attempt {attempt + 1}/{self.max_retries + 1}, waiting {delay:.1f}s..."
            )
            time.sleep(delay)

        raise TransportFailure(
            f"{method.upper()} {url}: max retries exceeded. Last error: {last_error}"
        )

    def _calculate_delay(self, attempt: int, resp=None) -> float:
        """
        Calculate delay with exponential backoff and jitter.

        Args:
            attempt: Current attempt number
            resp: Optional response object (to check Retry-After header)

        Returns:
            Delay in seconds
        """
        if resp is not None and "Retry-After" in resp.headers:
            try:
                return min(float(resp.headers["Retry-After"]), self.max_delay)
            except ValueError:
                pass

        delay = self.base_delay * (2**attempt)
        jitter = delay * 0.2 * (0.5 - time.time() % 1)
        return min(delay + jitter, self.max_delay)

    @staticmethod
    def _error_details(resp) -> Dict[str, Any]:
        try:
            data = resp.json()
        except ValueError:
            return {}
        if not isinstance(data, dict):
            return {}
        return data.get("error", {}) or {}

    def _error_message(self, resp) -> str:
        return self._error_details(resp).get("message") or resp.text[:200]

    def _platform_error(self, resp) -> PlatformError:
        """Map an HTTP error response to a coded platform error."""
        details = self._error_details(resp)
        message = details.get("message") or resp.text[:200]
        errors = details.get("errors") or []
        reason = errors[0].get("reason", "") if errors else ""
        status = resp.status_code

        if status == 404:
            return PlatformError(NOT_FOUND, message, status=status)
        if status == 409:
            return PlatformError(ALREADY_EXISTS, message, status=status)
        if status == 412:
            return Conflict(message, status=status)
        if status == 400 and reason == "resourceInUseByAnotherResource":
            return PlatformError(RESOURCE_IN_USE, message, status=status)
        return PlatformError(f"HTTP_{status}", message, status=status)

    def _operation(self, method: str, url: str, **kwargs) -> OperationHandle:
        resp = self._request_with_retry(method, url, **kwargs)
        if resp.status_code not in (200, 202):
            raise self._platform_error(resp)
        data = resp.json()
        if "selfLink" not in data:
            raise PlatformError(
                "INVALID_RESPONSE", f"{method} {url} returned no operation: {data}"
            )
        handle = OperationHandle.from_api(data)
        logger.debug(f"{method} {url} -> operation {handle.name}")
        return handle

    def get(
        self, kind: ResourceKind, name: str, zone: Optional[str] = None
    ) -> Optional[ResourceRef]:
        """
        Get a resource by name.

        Returns:
            ResourceRef if found, None otherwise

        Raises:
            PlatformError: If the API call fails for another reason
        """
        resp = self._request_with_retry("GET", self.resource_url(kind, name, zone))
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise self._platform_error(resp)
        return ResourceRef.from_api(kind, resp.json())

    def list(
        self,
        kind: ResourceKind,
        zone: Optional[str] = None,
        filter: Optional[str] = None,
    ) -> Iterator[ResourceRef]:
        """
        Lazily list resources of a kind, following page tokens.

        Reissuing the call with the same filter restarts the listing.
        """
        url = self.resource_url(kind, zone=zone)
        page_token: Optional[str] = None

        while True:
            params = {}
            if filter:
                params["filter"] = filter
            if page_token:
                params["pageToken"] = page_token

            resp = self._request_with_retry("GET", url, params=params)
            if resp.status_code != 200:
                raise self._platform_error(resp)

            data = resp.json()
            for item in data.get("items", []):
                yield ResourceRef.from_api(kind, item)

            page_token = data.get("nextPageToken")
            if not page_token:
                break

    def list_all_instances(self, filter: Optional[str] = None) -> Iterator[ResourceRef]:
        """Lazily list instances across every zone of the project."""
        url = self._url("aggregated/instances")
        page_token: Optional[str] = None

        while True:
            params = {}
            if filter:
                params["filter"] = filter
            if page_token:
                params["pageToken"] = page_token

            resp = self._request_with_retry("GET", url, params=params)
            if resp.status_code != 200:
                raise self._platform_error(resp)

            data = resp.json()
            for scoped in data.get("items", {}).values():
                for item in scoped.get("instances", []):
                    yield ResourceRef.from_api(ResourceKind.INSTANCE, item)

            page_token = data.get("nextPageToken")
            if not page_token:
                break

    def insert(
        self, kind: ResourceKind, payload: Dict[str, Any], zone: Optional[str] = None
    ) -> OperationHandle:
        """Submit creation of a resource and return its operation."""
        return self._operation("POST", self.resource_url(kind, zone=zone), json=payload)

    def delete(
        self, kind: ResourceKind, name: str, zone: Optional[str] = None
    ) -> OperationHandle:
        """Submit deletion of a resource and return its operation."""
        return self._operation("DELETE", self.resource_url(kind, name, zone))

    def patch(
        self,
        kind: ResourceKind,
        name: str,
        payload: Dict[str, Any],
        zone: Optional[str] = None,
    ) -> OperationHandle:
        """Submit a partial update of a resource and return its operation."""
        return self._operation(
            "PATCH", self.resource_url(kind, name, zone), json=payload
        )

    def set_tags(
        self, name: str, zone: str, items: List[str], fingerprint: Optional[str]
    ) -> OperationHandle:
        """
        Replace the tags of an instance.

        The fingerprint must be the instance's current tags fingerprint; a stale
        one is rejected with CONDITION_NOT_MET.
        """
        url = f"{self.resource_url(ResourceKind.INSTANCE, name, zone)}/setTags"
        body = {"items": list(items), "fingerprint": fingerprint}
        return self._operation("POST", url, json=body)

    def get_operation(
        self, handle: OperationHandle, deadline: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Get status of a long-running operation.

        Transient failures are retried, but never past ``deadline`` (a
        ``time.monotonic()`` value).

        Raises:
            PlatformError: NOT_FOUND if the operation record expired
        """
        resp = self._request_with_retry(
            "GET", self._url(handle.self_link), deadline=deadline
        )
        if resp.status_code != 200:
            raise self._platform_error(resp)
        return resp.json()
