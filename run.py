#!/usr/bin/env python3
"""
Run script for the SnapSight capture service
"""
import uvicorn

from snapsight.config.settings import settings

if __name__ == "__main__":
    uvicorn.run("snapsight.main:app", host=settings.host, port=settings.port, reload=settings.debug)
