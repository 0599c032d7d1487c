"""AWS Lambda entry point.

Mangum translates API Gateway HTTP API (v2) events into ASGI so the
gateway runs unchanged on Lambda. Rate-limit windows live per warm
container there, not per deployment.
"""

from mangum import Mangum

from weather_gateway.logging.audit import setup_logging
from weather_gateway.main import app

# lifespan is off under Mangum, so configure logging at cold start
setup_logging()

handler = Mangum(app, lifespan="off")
