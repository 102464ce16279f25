import uvicorn

from digitalius.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "digitalius.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",  # Only reload in development
        log_level="info" if settings.environment == "development" else "warning",
    )
