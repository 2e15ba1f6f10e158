"""Thin client for the Redis Enterprise management API (bdb endpoints).

Requests run through an azure-core PipelineClient. Every failure is decoded
exactly once, here, into an ApiError whose ``kind`` tag tells callers whether
the request never completed (transport), the service answered with a
structured error body (service), or anything else happened (unknown).
Downstream code matches on the tag and never inspects exception types from
the HTTP stack.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from azure.core import PipelineClient
from azure.core.exceptions import AzureError, ServiceRequestError, ServiceResponseError
from azure.core.pipeline.policies import (
    HeadersPolicy,
    HttpLoggingPolicy,
    RetryPolicy,
    UserAgentPolicy,
)
from azure.core.rest import HttpRequest, HttpResponse
from pydantic import ValidationError

from .errors import ApiError, ErrorKind, ServiceErrorPayload
from .models import Database

logger = logging.getLogger(__name__)

USER_AGENT = "redis-enterprise-provisioner/0.1.0"

DATABASES_PATH = "/v1/bdbs"
DATABASE_PATH = "/v1/bdbs/{uid}"

T = TypeVar("T")


@dataclass(frozen=True)
class ApiResponse(Generic[T]):
    """A successful call: decoded body plus the HTTP status code."""

    status_code: int
    body: T


def basic_auth_header(username: str, password: str) -> str:
    """Build an HTTP basic Authorization header value."""
    token = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
    return f"Basic {token}"


def decode_error_response(response: HttpResponse) -> ApiError:
    """Turn a non-2xx response into an ApiError.

    A JSON object body is a structured service error even if it carries
    neither ``error_code`` nor ``description``; anything else is UNKNOWN.
    """
    status_code = response.status_code
    try:
        body = json.loads(response.text() or "null")
    except ValueError:
        body = None

    if isinstance(body, dict):
        payload = ServiceErrorPayload(
            error_code=str(body.get("error_code") or ""),
            description=str(body.get("description") or ""),
        )
        return ApiError(
            f"management API returned HTTP {status_code}",
            kind=ErrorKind.SERVICE,
            status_code=status_code,
            payload=payload,
        )

    return ApiError(
        f"management API returned HTTP {status_code} with an unstructured body",
        kind=ErrorKind.UNKNOWN,
        status_code=status_code,
    )


class DatabasesApi:
    """bdb CRUD against the management API.

    Retries are disabled: a transport failure on a mutating request leaves
    the outcome unknown, and re-sending could create a duplicate database.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        *,
        request_timeout_seconds: int = 30,
        verify_tls: bool = True,
        transport: Any | None = None,
    ) -> None:
        policies = [
            HeadersPolicy(
                base_headers={
                    "Authorization": basic_auth_header(username, password),
                    "Accept": "application/json",
                }
            ),
            UserAgentPolicy(base_user_agent=USER_AGENT),
            RetryPolicy.no_retries(),
            HttpLoggingPolicy(),
        ]
        kwargs: dict[str, Any] = {"policies": policies}
        if transport is not None:
            kwargs["transport"] = transport

        self._base_url = base_url.rstrip("/")
        self._client: PipelineClient = PipelineClient(self._base_url, **kwargs)
        self._request_timeout = request_timeout_seconds
        self._verify_tls = verify_tls

    @property
    def base_url(self) -> str:
        return self._base_url

    def get_database(self, uid: int) -> ApiResponse[Database]:
        """GET /v1/bdbs/{uid}."""
        response = self._send("GET", DATABASE_PATH, uid=uid)
        return ApiResponse(response.status_code, self._decode_database(response))

    def create_database(self, payload: dict[str, Any]) -> ApiResponse[Database]:
        """POST /v1/bdbs."""
        response = self._send("POST", DATABASES_PATH, json_body=payload)
        return ApiResponse(response.status_code, self._decode_database(response))

    def update_database(self, uid: int, payload: dict[str, Any]) -> ApiResponse[Database]:
        """PUT /v1/bdbs/{uid} with a partial body."""
        response = self._send("PUT", DATABASE_PATH, uid=uid, json_body=payload)
        return ApiResponse(response.status_code, self._decode_database(response))

    def delete_database(self, uid: int) -> ApiResponse[None]:
        """DELETE /v1/bdbs/{uid}."""
        response = self._send("DELETE", DATABASE_PATH, uid=uid)
        return ApiResponse(response.status_code, None)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> DatabasesApi:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _send(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        **path_params: Any,
    ) -> HttpResponse:
        url = self._client.format_url(path, **path_params)
        request = HttpRequest(method, url, json=json_body)
        logger.debug("Sending management API request", extra={"method": method, "url": url})

        try:
            response = self._client.send_request(
                request,
                connection_timeout=self._request_timeout,
                read_timeout=self._request_timeout,
                connection_verify=self._verify_tls,
            )
        except (ServiceRequestError, ServiceResponseError) as e:
            raise ApiError(
                f"{method} {path} failed: {e}", kind=ErrorKind.TRANSPORT
            ) from e
        except AzureError as e:
            raise ApiError(f"{method} {path} failed: {e}", kind=ErrorKind.UNKNOWN) from e

        if response.status_code >= 400:
            raise decode_error_response(response)

        return response

    def _decode_database(self, response: HttpResponse) -> Database:
        try:
            return Database.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ApiError(
                f"could not decode database from HTTP {response.status_code} response",
                kind=ErrorKind.UNKNOWN,
                status_code=response.status_code,
            ) from e
