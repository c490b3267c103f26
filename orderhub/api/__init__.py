"""HTTP surface: FastAPI app factory and routers."""
