"""
Memory Lane Backend — Request Dependencies
===========================================

FastAPI dependencies that hand route handlers the services built once in
the application lifespan and stored on app.state.
"""

from fastapi import Request

from memorylane.services.memory_repository import MemoryRepository
from memorylane.services.upload_service import UploadService


def get_repository(request: Request) -> MemoryRepository:
    return request.app.state.repository


def get_upload_service(request: Request) -> UploadService:
    return request.app.state.upload_service
