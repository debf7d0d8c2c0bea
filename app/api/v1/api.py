from fastapi import APIRouter
from app.api.v1.endpoints import (
    health, employees, projects, key_steps, tasks, subtasks
)

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(employees.router, prefix="/employees", tags=["employees"])

# Resource endpoints
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(key_steps.router, prefix="/key-steps", tags=["key-steps"])
api_router.include_router(tasks.router, prefix="/tasks", tags=["tasks"])
api_router.include_router(subtasks.router, prefix="/subtasks", tags=["subtasks"])
