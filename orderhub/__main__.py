"""Run the API with uvicorn: ``python -m orderhub``."""

import os

import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", "8060"))
    uvicorn.run("orderhub.api.app:create_app", factory=True, host="0.0.0.0", port=port)
