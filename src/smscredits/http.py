"""Helpers shared by the API Gateway (HTTP API v2) Lambda handlers."""

import base64
import json
from typing import Any, Dict, Optional

from smscredits.errors import InvalidRequest, SmsCreditsError
from smscredits.logger import get_logger

logger = get_logger("http")


def json_response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body, default=str),
    }


def error_response(exc: SmsCreditsError) -> Dict[str, Any]:
    return json_response(exc.status_code, exc.to_dict())


def raw_body(event: dict) -> bytes:
    """The request body exactly as received (needed for webhook signatures)."""
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        return base64.b64decode(body)
    return body.encode("utf-8") if isinstance(body, str) else json.dumps(body).encode("utf-8")


def parse_body(event: dict) -> dict:
    """
    Extract and parse the JSON body from the Lambda event.

    - For API Gateway / HttpApi: event["body"] should be a JSON string.
    - For direct tests: event["body"] may already be a dict.
    """
    body = event.get("body")
    if isinstance(body, dict):
        return body
    if not body:
        return {}

    try:
        payload = json.loads(raw_body(event))
    except json.JSONDecodeError:
        logger.warning("http.invalid_json", extra={"body_preview": str(body)[:200]})
        raise InvalidRequest("Request body is not valid JSON")

    if not isinstance(payload, dict):
        raise InvalidRequest("Request body must be a JSON object")
    return payload


def claims_from_event(event: dict) -> Dict[str, Any]:
    return (
        event.get("requestContext", {})
        .get("authorizer", {})
        .get("jwt", {})
        .get("claims", {})
    )


def org_id_from_event(event: dict) -> Optional[str]:
    """
    Organization id of the caller.

    Taken from the JWT authorizer's ``org_id`` claim; falls back to the
    X-Organization-Id header set by the internal gateway.
    """
    claims = claims_from_event(event)
    if claims.get("org_id"):
        return claims["org_id"]

    headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}
    return headers.get("x-organization-id")
