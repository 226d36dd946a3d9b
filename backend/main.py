"""
Entry point for the conversation service.

Run with ``uvicorn main:app`` from the backend directory, or ``python main.py``.
"""

from dotenv import load_dotenv

load_dotenv()

from core.app_factory import create_app  # noqa: E402

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
