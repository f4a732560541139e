import uvicorn

from assignment_bot.config import settings


def main() -> None:
    uvicorn.run("assignment_bot.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
