from app.core.app_factory import create_app

app = create_app()


if __name__ == "__main__":
    import uvicorn

    # One worker: usage counters are process-local
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, workers=1)
