# client/api_client.py
from __future__ import annotations

import json
import urllib.error
import urllib.request
from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode, urljoin

from .models import StagesInfo


class APIError(Exception):
    """Raised when API requests fail."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class APIClient:
    """HTTP client for the stageview API."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        """
        Initialize API client.

        Args:
            base_url: Base URL of the API (e.g., "http://localhost:8000")
            timeout: Socket timeout per request, in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(
        self,
        method: str,
        path: str,
        data: Optional[dict] = None,
    ) -> dict:
        """
        Make an HTTP request to the API.

        Returns:
            Parsed JSON response as dictionary

        Raises:
            APIError: If the request fails
        """
        url = urljoin(self.base_url + "/", path.lstrip("/"))

        req_data = None
        if data is not None:
            req_data = json.dumps(data).encode("utf-8")

        req = urllib.request.Request(
            url,
            data=req_data,
            headers={"Content-Type": "application/json"},
            method=method,
        )

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                response_data = response.read().decode("utf-8")
                if response_data:
                    return json.loads(response_data)
                return {}
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8") if e.fp else ""
            detail = error_body
            try:
                detail = json.loads(error_body).get("detail", error_body)
            except (json.JSONDecodeError, AttributeError):
                pass
            raise APIError(f"API request failed: {e.code} {e.reason}. {detail}".rstrip(), status=e.code)
        except urllib.error.URLError as e:
            raise APIError(f"Network error: {e.reason}")
        except json.JSONDecodeError as e:
            raise APIError(f"Invalid JSON response: {e}")

    def _build_path(self, build_id: str, leaf: str) -> str:
        return f"/builds/{quote(build_id, safe='')}/{leaf}"

    def stages(self, build_id: str) -> StagesInfo:
        return StagesInfo.from_dict(self._request("GET", self._build_path(build_id, "stages")))

    def all_stages(self, build_id: str) -> StagesInfo:
        return StagesInfo.from_dict(self._request("GET", self._build_path(build_id, "allstages")))

    def stage_log(self, build_id: str, stage_id: str) -> Dict[str, Any]:
        query = urlencode({"stage_id": stage_id})
        return self._request("GET", f"{self._build_path(build_id, 'stagelog')}?{query}")

    def submit(self, build_id: str, input_id: str, parameters: Optional[Dict[str, Any]] = None) -> bool:
        """
        Submit a pending input.

        Returns:
            True if the input was resolved, False if it was no longer pending
        """
        try:
            response = self._request(
                "POST",
                self._build_path(build_id, "submit"),
                data={"input_id": input_id, "parameters": parameters or {}},
            )
        except APIError as e:
            if e.status == 409:
                return False
            raise
        return bool(response.get("ok"))

    def abort(self, build_id: str, input_id: str) -> bool:
        try:
            response = self._request(
                "POST",
                self._build_path(build_id, "abort"),
                data={"input_id": input_id},
            )
        except APIError as e:
            if e.status == 409:
                return False
            raise
        return bool(response.get("ok"))
