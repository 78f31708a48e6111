"""Run the API server: `python -m trame_backend`."""
import uvicorn

from .api.main import app
from .config import get_settings


def main():
    settings = get_settings()
    # logging is configured by the app lifespan
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
