# infrastructure/tools/catalogue.py
from typing import Dict, Any, Optional, List

from pydantic import BaseModel, Field

from domain.models.tools import Tool
from domain.models.task_state import TaskStatus

class SalesKpisInput(BaseModel):
    since: Optional[str] = Field(None, description="ISO date (YYYY-MM-DD); defaults to today",
                                 pattern=r"^\d{4}-\d{2}-\d{2}$")

class ListProductsInput(BaseModel):
    limit: int = Field(10, ge=1, le=50)

class UpdateProductSeoInput(BaseModel):
    product_id: str = Field(..., min_length=1)
    seo_title: str = Field(..., min_length=1, max_length=70)
    seo_description: str = Field(..., min_length=1, max_length=320)

class ReadFileInput(BaseModel):
    path: str = Field(..., min_length=1)

class WriteFileInput(BaseModel):
    path: str = Field(..., min_length=1)
    content: str
    commit_message: str = Field(..., min_length=1)

class SendNotificationInput(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    priority: int = Field(0, ge=-1, le=1)

class SuggestTaskInput(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    task_type: str = Field(..., min_length=1)
    description: str = ""
    assignee: Optional[str] = None
    input_data: Dict[str, Any] = Field(default_factory=dict)

class ListTasksInput(BaseModel):
    status: Optional[TaskStatus] = None
    limit: int = Field(20, ge=1, le=100)

def build_tools(commerce, repository, notifier) -> List[Tool]:
    """Tools backed by the external adapters"""

    async def get_sales_kpis(params: SalesKpisInput) -> Dict[str, Any]:
        return await commerce.get_sales_kpis(params.since)

    async def list_products(params: ListProductsInput) -> Dict[str, Any]:
        products = await commerce.list_products(params.limit)
        return {"products": products, "count": len(products)}

    async def update_product_seo(params: UpdateProductSeoInput) -> Dict[str, Any]:
        product = await commerce.update_product_seo(
            params.product_id, params.seo_title, params.seo_description
        )
        return {"updated": True, "product": product}

    async def read_repository_file(params: ReadFileInput) -> Dict[str, Any]:
        return await repository.read_file(params.path)

    async def write_repository_file(params: WriteFileInput) -> Dict[str, Any]:
        return await repository.write_file(params.path, params.content, params.commit_message)

    async def send_notification(params: SendNotificationInput) -> Dict[str, Any]:
        delivered = await notifier.notify(params.title, params.message, priority=params.priority)
        return {"delivered": delivered}

    return [
        Tool("get_sales_kpis",
             "Revenue, order count and average basket for orders since a date",
             SalesKpisInput, get_sales_kpis),
        Tool("list_products",
             "List catalogue products with their status and inventory",
             ListProductsInput, list_products),
        Tool("update_product_seo",
             "Overwrite the SEO title and description of one product",
             UpdateProductSeoInput, update_product_seo, privileged=True),
        Tool("read_repository_file",
             "Read one file from the site repository",
             ReadFileInput, read_repository_file),
        Tool("write_repository_file",
             "Commit one file to the site repository; this triggers a deployment",
             WriteFileInput, write_repository_file, privileged=True),
        Tool("send_notification",
             "Send a push notification (and email when priority is high) to the operator",
             SendNotificationInput, send_notification),
    ]

def build_task_tools(orchestrator) -> List[Tool]:
    """Tools that act on the task queue itself"""

    async def suggest_task(params: SuggestTaskInput) -> Dict[str, Any]:
        task = await orchestrator.suggest_task(
            title=params.title,
            task_type=params.task_type,
            description=params.description,
            assignee=params.assignee,
            input_data=params.input_data
        )
        return {"task_id": task.task_id, "status": task.status.value}

    async def list_tasks(params: ListTasksInput) -> Dict[str, Any]:
        tasks = await orchestrator.task_store.list_tasks(params.status, params.limit)
        return {"tasks": [
            {"task_id": t.task_id, "title": t.title, "status": t.status.value, "task_type": t.task_type}
            for t in tasks
        ]}

    return [
        Tool("suggest_task",
             "Propose a follow-up task; a human must approve it before it runs",
             SuggestTaskInput, suggest_task),
        Tool("list_tasks",
             "List recent tasks, optionally filtered by status",
             ListTasksInput, list_tasks),
    ]

# Tools each capability may see; suggest_task is dropped for tasks that
# may not create subtasks
CAPABILITY_TOOLS = {
    "analytical": ("get_sales_kpis", "list_products", "list_tasks", "send_notification", "suggest_task"),
    "operational": ("list_products", "update_product_seo", "send_notification", "suggest_task"),
    "technical": ("read_repository_file", "write_repository_file", "list_tasks",
                  "send_notification", "suggest_task"),
}
