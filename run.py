#!/usr/bin/env python3
# run.py
"""
Development server runner.

Uses the configured DATABASE_URL; with the default sqlite URL the tables
are created on startup.
"""

import os

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "pilates_studio.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        log_level="info",
    )
