"""
Process entry point.

Run with `credit-library` (console script) or
`uvicorn credit_library.main:app`.
"""

from __future__ import annotations

from .api.app import create_app
from .config import Settings


settings = Settings()
app = create_app(settings)


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
