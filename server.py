import os

import uvicorn

from healthkpi import settings
from healthkpi.main import app


def main():
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8765"))
    # structlog owns formatting; keep uvicorn from installing its own handlers
    uvicorn.run(app, host=host, port=port, log_config=None, log_level="debug" if settings.LOG_DEBUG else "info")


if __name__ == "__main__":
    main()
