import uvicorn

from earlbox.config import settings


def main():
    uvicorn.run(
        "earlbox.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=False,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
