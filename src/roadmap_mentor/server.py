"""Run the HTTP API under uvicorn."""

import os

import uvicorn
from dotenv import load_dotenv

from roadmap_mentor.config import load_settings
from roadmap_mentor.logs import setup_logging


def main():
    load_dotenv()
    settings = load_settings()
    setup_logging(settings.log_level, settings.log_file)
    # Get port from environment or default to 8000
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("roadmap_mentor.api.app:app", host=os.environ.get("HOST", "0.0.0.0"), port=port, reload=False)


if __name__ == "__main__":
    main()
