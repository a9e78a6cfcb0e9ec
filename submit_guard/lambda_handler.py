"""AWS Lambda handler for the repeat submit guard demo API.

Each warm Lambda container keeps its own cache, so duplicates are only
caught when they reach the same container.
"""

from mangum import Mangum

from submit_guard.main import app

# lifespan is off: Lambda freezes containers between invocations, so the
# background sweep cannot run; shards still purge themselves on traffic
handler = Mangum(app, lifespan="off", api_gateway_base_path="/v1")


def lambda_handler(event: dict, context: object) -> dict:
    """
    AWS Lambda function handler.

    Args:
        event: API Gateway event containing request details
        context: Lambda context object with runtime information

    Returns:
        API Gateway response dict with statusCode, headers, and body
    """
    return handler(event, context)
