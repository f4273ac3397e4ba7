# tests/unit/infrastructure/tools/test_catalogue.py
from unittest.mock import AsyncMock, MagicMock

import pytest

from application.services.tool_dispatcher import ToolDispatcher
from domain.exceptions import RateLimitedError
from domain.models.task_state import Task, TaskStatus
from domain.models.tools import ToolOutcome
from domain.models.workflow import SecurityMode
from infrastructure.tools.catalogue import build_tools, build_task_tools, CAPABILITY_TOOLS

@pytest.fixture
def commerce():
    client = AsyncMock()
    client.get_sales_kpis.return_value = {"revenue": 1200.0, "orders": 30, "average_basket": 40.0}
    client.list_products.return_value = [{"id": "gid://shopify/Product/1", "title": "Tee"}]
    client.update_product_seo.return_value = {"id": "gid://shopify/Product/1"}
    return client

@pytest.fixture
def repository():
    client = AsyncMock()
    client.read_file.return_value = {"path": "index.html", "content": "<html></html>"}
    return client

@pytest.fixture
def dispatcher(commerce, repository, notifier):
    return ToolDispatcher(build_tools(commerce, repository, notifier))

class TestCatalogue:

    def test_every_capability_tool_exists(self, dispatcher):
        orchestrator = MagicMock()
        for tool in build_task_tools(orchestrator):
            dispatcher.register(tool)

        for names in CAPABILITY_TOOLS.values():
            for name in names:
                assert dispatcher.get(name) is not None, name

    def test_only_external_writes_are_privileged(self, dispatcher):
        privileged = {name for name in dispatcher.tool_names if dispatcher.get(name).privileged}
        assert privileged == {"update_product_seo", "write_repository_file"}

    @pytest.mark.asyncio
    async def test_list_products(self, dispatcher, commerce):
        result = await dispatcher.execute("list_products", {"limit": 5})

        assert result.outcome == ToolOutcome.OK
        assert result.output["count"] == 1
        commerce.list_products.assert_awaited_once_with(5)

    @pytest.mark.asyncio
    async def test_list_products_limit_is_bounded(self, dispatcher, commerce):
        result = await dispatcher.execute("list_products", {"limit": 500})

        assert result.outcome == ToolOutcome.VALIDATION_ERROR
        commerce.list_products.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_seo_title_length_is_validated(self, dispatcher, commerce):
        result = await dispatcher.execute("update_product_seo", {
            "product_id": "1", "seo_title": "x" * 71, "seo_description": "ok"
        })

        assert result.outcome == ToolOutcome.VALIDATION_ERROR
        commerce.update_product_seo.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_write_blocked_in_read_only_dispatcher(self, commerce, repository, notifier):
        dispatcher = ToolDispatcher(build_tools(commerce, repository, notifier),
                                    security_mode=SecurityMode.READ_ONLY)

        result = await dispatcher.execute("write_repository_file", {
            "path": "index.html", "content": "<html/>", "commit_message": "update"
        })

        assert result.outcome == ToolOutcome.BLOCKED
        repository.write_file.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_send_notification(self, dispatcher, notifier):
        result = await dispatcher.execute("send_notification", {"title": "Low stock", "message": "Tee: 2 left"})

        assert result.output == {"delivered": True}
        assert notifier.sent == [{"title": "Low stock", "message": "Tee: 2 left", "priority": 0}]

    @pytest.mark.asyncio
    async def test_suggest_task_tool_calls_orchestrator(self):
        orchestrator = MagicMock()
        orchestrator.suggest_task = AsyncMock(return_value=Task(
            task_id="t-9", title="Restock tees", task_type="restock", status=TaskStatus.PENDING_VALIDATION
        ))
        dispatcher = ToolDispatcher(build_task_tools(orchestrator))

        result = await dispatcher.execute("suggest_task", {"title": "Restock tees", "task_type": "restock"})

        assert result.output == {"task_id": "t-9", "status": "pending_validation"}
        assert orchestrator.suggest_task.await_args.kwargs["title"] == "Restock tees"

    @pytest.mark.asyncio
    async def test_suggest_task_refusal_becomes_tool_error(self):
        orchestrator = MagicMock()
        orchestrator.suggest_task = AsyncMock(side_effect=RateLimitedError("At most 10 task suggestions per hour"))
        dispatcher = ToolDispatcher(build_task_tools(orchestrator))

        result = await dispatcher.execute("suggest_task", {"title": "Again", "task_type": "x"})

        assert result.outcome == ToolOutcome.EXECUTION_ERROR
        assert "per hour" in result.error
