import logging
import os

import uvicorn

from app.config import load_settings
from app.main import create_asgi_app

logging.basicConfig(level=logging.INFO)


def main() -> None:
    # Fails fast when JWT_SECRET is missing.
    settings = load_settings()
    uvicorn.run(
        create_asgi_app(settings),
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
