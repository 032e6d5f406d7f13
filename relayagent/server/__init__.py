"""HTTP surface: FastAPI app exposing chat streaming, sessions, tools and approvals."""
