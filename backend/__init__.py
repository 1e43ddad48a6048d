"""DHIS2 to ALMA Sync Scheduler Backend Package.

This package provides the FastAPI backend that schedules and runs syncs
of DHIS2 indicator analytics into ALMA scorecards, including:

- Schedule CRUD and lifecycle (start, stop, pause, resume)
- Durable job queue with retries and restart recovery
- DHIS2 and ALMA API clients
- Live status over WebSocket

Usage:
    # Development (from project root):
    PYTHONPATH=backend uvicorn app:app --reload --port 8080

Modules:
    app: FastAPI application entry point
    config: Environment configuration
    scheduler: Schedules, job queue, sync worker and broadcaster
    connectors: DHIS2/ALMA clients and the instance registry
    routes: API routers
"""

__version__ = "0.1.0"
