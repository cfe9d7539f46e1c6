"""ShopSync - Main Entry Point."""

from dotenv import load_dotenv

load_dotenv()

from shopsync.config.settings import settings  # noqa: E402
from shopsync.server.app import create_app  # noqa: E402

# Create FastAPI application
app = create_app(settings)


def run():
    import uvicorn

    uvicorn.run(
        "shopsync.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=120,
        timeout_keep_alive=5,
        access_log=False,  # structured logging covers requests
    )


if __name__ == "__main__":
    run()
