import uvicorn

from relay_console.config import settings


def main() -> None:
    uvicorn.run(
        "relay_console.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
