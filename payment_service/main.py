"""ASGI entrypoint for the payment service.

Run with ``uvicorn payment_service.main:app`` or ``python -m payment_service.main``.
"""

import os

import uvicorn

from .core.app_factory import create_application

app = create_application()

__all__ = ("app",)


if __name__ == "__main__":
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "3003")))
