"""
Case Tracker Offline Worker - host entry point

Run with:
    python -m caseworker.main
or:
    uvicorn caseworker.main:app --port 8080
"""
import logging

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from config.settings import settings  # noqa: E402
from caseworker.host import create_app  # noqa: E402

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = create_app()


def main():
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
