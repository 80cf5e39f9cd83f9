import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "backend-api-gateway")

# Backend the proxy routes forward to. NEXT_PUBLIC_API_URL is honoured for
# deployments that still share the web frontend's environment file.
BACKEND_API_URL = os.getenv(
    "BACKEND_API_URL", os.getenv("NEXT_PUBLIC_API_URL", "http://localhost:4000")
).rstrip("/")
PROXY_PREFIX = os.getenv("PROXY_PREFIX", "/api")
PROXY_TIMEOUT = float(os.getenv("PROXY_TIMEOUT", "30"))

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
