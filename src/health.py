import json

from smscredits import __version__
from smscredits.logger import log


def lambda_handler(event, context):
    log(
        "health.check",
        path=event.get("rawPath", "/healthz"),
        method=event.get("requestContext", {}).get("http", {}).get("method", "GET"),
    )
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({"status": "ok", "version": __version__}),
    }
