import uvicorn

from consent_portal.config import settings


def main():
    uvicorn.run("consent_portal.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
