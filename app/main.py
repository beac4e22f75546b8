"""ASGI entrypoint: ``uvicorn app.main:app``."""

from app.core.app_factory import create_app

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=3000)
