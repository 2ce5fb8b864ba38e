# server.py
"""ASGI entry point: `uvicorn server:app`."""
import os

import uvicorn

from marketplace.app import create_app

app = create_app()


if __name__ == "__main__":
    uvicorn.run("server:app", host="0.0.0.0", port=int(os.getenv("PORT", "5000")))
