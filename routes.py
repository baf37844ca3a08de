# routes.py
from fastapi import FastAPI
from controller.document_controller import document_router
from controller.qa_controller import qa_router


def register_routes(app: FastAPI) -> None:
    """Register & Access control controllers here."""
    app.include_router(qa_router)
    app.include_router(document_router)
