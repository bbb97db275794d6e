"""Translate workflow failures into HTTP responses."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bloodconnect.services.errors import WorkflowError


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WorkflowError, workflow_error_handler)
