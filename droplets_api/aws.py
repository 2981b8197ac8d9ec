"""AWS Lambda handler for the Droplets API.

Only HTTP events are served; the world room WebSocket needs a long-running
process, so Lambda deployments point ``DROPLETS_WORLD_ROOM_URL`` at one.
"""

from typing import Any

from loguru import logger
from mangum import Mangum

from .api import app

logger.add(lambda msg: print(msg, end=""))  # Lambda logs to stdout
handler = Mangum(app, lifespan="auto")


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """AWS Lambda entry point.

    Args:
        event: Lambda event dictionary containing request information.
        context: Lambda context object with runtime information.

    Returns:
        Response dictionary with statusCode, headers, and body.

    """
    http = event.get("requestContext", {}).get("http", {})
    method = event.get("httpMethod") or http.get("method")
    path = event.get("rawPath") or event.get("path")
    logger.info("Lambda event: {} {}", method, path)
    response = handler(event, context)
    logger.info("Lambda response status: {}", response.get("statusCode"))

    return response  # type: ignore[no-any-return]
