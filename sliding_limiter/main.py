import uvicorn

from sliding_limiter.core.app_factory import create_app

app = create_app()


def run() -> None:
    """Serve the app with uvicorn (``sliding-limiter`` console script)."""
    uvicorn.run("sliding_limiter.main:app", host="0.0.0.0", port=8000, log_config=None)


if __name__ == "__main__":
    run()
