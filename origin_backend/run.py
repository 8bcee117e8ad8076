#!/usr/bin/env python3
"""Run the Origin mint backend"""
import uvicorn

from origin_backend.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "origin_backend.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )
