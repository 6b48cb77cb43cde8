"""
Bizdesk API entry point.

    uvicorn main:app --app-dir backend
"""

import logging
import os

from bizdesk.app import create_app
from bizdesk.config.settings import get_settings

# Configure structured logging
logging.basicConfig(
    level=get_settings().log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=get_settings().env == "development"
    )
