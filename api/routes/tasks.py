"""
Task routes.

Admins see and manage every task. Clients see their own tasks and may only
change their status.
"""
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends

from app.errors import NotFound
from app.logger import get_logger
from app.models import TASK_COMPLETED, Task, User
from app.notifier import (
    NotificationDispatcher,
    get_notifier,
    task_assigned_message,
    task_completed_message,
)
from app.stores import TaskStore, UserStore, get_task_store, get_user_store
from auth.oauth2 import get_current_user
from auth.permissions import ensure_owner_or_admin, require_admin
from schemas.common import MessageResponse
from schemas.tasks import TaskCreate, TaskOut, TaskUpdate

logger = get_logger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])

# Fields a client may change on their own task.
CLIENT_MUTABLE_FIELDS = {"status"}


def _get_task_or_404(tasks: TaskStore, task_id: str) -> Task:
    task = tasks.get(task_id)
    if task is None:
        raise NotFound("Task not found")
    return task


@router.get("", response_model=List[TaskOut])
def list_tasks(
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
):
    """List all tasks for admins, or the caller's own tasks for clients."""
    if user.is_admin:
        return tasks.find()
    return tasks.find(client_id=user.id)


@router.get("/{task_id}", response_model=TaskOut)
def get_task(
    task_id: str,
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
):
    task = _get_task_or_404(tasks, task_id)
    ensure_owner_or_admin(task.client_id, user, "Not authorized to access this task")
    return task


@router.post("", response_model=TaskOut, status_code=201)
def create_task(
    body: TaskCreate,
    background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin),
    tasks: TaskStore = Depends(get_task_store),
    users: UserStore = Depends(get_user_store),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    client = users.get_client(body.client_id)
    if client is None:
        raise NotFound("Client not found")

    task = tasks.create(
        title=body.title,
        description=body.description,
        client_id=client.id,
        created_by_id=admin.id,
        deadline=body.deadline,
        status=body.status,
    )
    logger.info(f"Task {task.id} assigned to {client.email}")

    background_tasks.add_task(
        notifier.send,
        client.phone,
        task_assigned_message(task.title, body.deadline, task.description),
    )
    return task


@router.put("/{task_id}", response_model=TaskOut)
def update_task(
    task_id: str,
    body: TaskUpdate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
    users: UserStore = Depends(get_user_store),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    task = _get_task_or_404(tasks, task_id)
    ensure_owner_or_admin(task.client_id, user, "Not authorized to update this task")

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if not user.is_admin:
        changes = {k: v for k, v in changes.items() if k in CLIENT_MUTABLE_FIELDS}
    elif "client_id" in changes:
        if users.get_client(changes["client_id"]) is None:
            raise NotFound("Client not found")

    previous_status = task.status
    task = tasks.update(task, changes)

    if task.status == TASK_COMPLETED and previous_status != TASK_COMPLETED:
        background_tasks.add_task(
            notifier.send,
            task.client.phone,
            task_completed_message(task.title),
        )
    return task


@router.delete("/{task_id}", response_model=MessageResponse, dependencies=[Depends(require_admin)])
def delete_task(task_id: str, tasks: TaskStore = Depends(get_task_store)):
    task = _get_task_or_404(tasks, task_id)
    tasks.delete(task)
    return {"message": "Task removed"}
