"""HTTP API: routers, endpoints and shared dependencies."""
