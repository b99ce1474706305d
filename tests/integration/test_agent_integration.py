"""
Integration tests: settings -> components -> agent -> tools -> store.

The completion endpoint is the only thing mocked. Everything else (registry,
handlers, in-memory store, email sender, orchestration loop) is real.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from salesbot.catalog.products import InMemoryProductStore, Product, ProductIdentifier
from salesbot.components import AgentComponents, load_product_store
from salesbot.config.settings import LLMSettings, Settings, ToolSettings
from salesbot.notifications import LoggingEmailSender

pytestmark = pytest.mark.integration

ACOMPLETION = "salesbot.llm.client.acompletion"


def _response(text=None, calls=None, prompt_tokens=100, completion_tokens=20):
    choice = MagicMock()
    choice.message.content = text
    tool_calls = None
    if calls:
        tool_calls = []
        for call_id, name, arguments in calls:
            tool_call = MagicMock()
            tool_call.id = call_id
            tool_call.function.name = name
            tool_call.function.arguments = arguments if isinstance(arguments, str) else json.dumps(arguments)
            tool_calls.append(tool_call)
    choice.message.tool_calls = tool_calls

    response = MagicMock()
    response.choices = [choice]
    response.model = "deepseek/deepseek-chat"
    response.usage.prompt_tokens = prompt_tokens
    response.usage.completion_tokens = completion_tokens
    return response


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        llm=LLMSettings(api_key="test-key", retry_jitter=0.0),
        tools=ToolSettings(sale_email_recipient="ventas@example.com"),
    )


@pytest.fixture
def store():
    return InMemoryProductStore(
        [
            Product(id="p-1", code="TK-1", reference="R1", description="Teclado mecánico RGB", stock=8, retail_price=45.0),
            Product(id="p-2", code="TK-2", reference="R2", description="Teclado de membrana", stock=15, retail_price=12.0),
            Product(id="p-3", code="MS-1", reference="R3", description="Mouse óptico", stock=3, retail_price=9.5),
        ]
    )


@pytest.fixture
def sender():
    return LoggingEmailSender()


@pytest.fixture
def agent(settings, store, sender):
    factory = AgentComponents(settings)
    return factory.create_agent(factory.create_registry(products=store, notifier=sender))


class TestSearchTurn:
    """A customer asks for a product; the model searches and answers."""

    @pytest.mark.asyncio
    async def test_search_then_answer(self, agent):
        mock = AsyncMock(
            side_effect=[
                _response(calls=[("call_1", "searchProducts", {"keywords": ["teclado"]})]),
                _response(text="Tengo 2 teclados: RGB a $45 y de membrana a $12.", prompt_tokens=400),
            ]
        )

        with patch(ACOMPLETION, new=mock):
            result = await agent.execute("necesito un teclado")

        assert result.success is True
        assert result.stop_reason == "completed"
        assert result.message == "Tengo 2 teclados: RGB a $45 y de membrana a $12."
        assert result.tools_used == ["searchProducts"]
        assert result.iterations == 1
        assert [r.step for r in result.usage.breakdown] == ["Initial request", "Tool iteration 1 (searchProducts)"]
        assert result.usage.prompt_tokens == 500

        # Second request carries the tool round-trip
        messages = mock.await_args_list[1].kwargs["messages"]
        assert messages[0]["role"] == "system"
        assert messages[-2]["role"] == "assistant"
        assert messages[-2]["tool_calls"][0]["function"]["name"] == "searchProducts"
        tool_message = messages[-1]
        assert tool_message["role"] == "tool"
        assert tool_message["tool_call_id"] == "call_1"
        content = json.loads(tool_message["content"])
        assert content["success"] is True
        assert "Teclado mecánico RGB" in content["data"]
        assert "Mouse" not in content["data"]

    @pytest.mark.asyncio
    async def test_tools_are_offered_with_auto_choice(self, agent):
        mock = AsyncMock(return_value=_response(text="Hola, ¿en qué te ayudo?"))

        with patch(ACOMPLETION, new=mock):
            await agent.execute("hola")

        kwargs = mock.await_args.kwargs
        assert [t["function"]["name"] for t in kwargs["tools"]] == [
            "getProduct",
            "searchProducts",
            "sendSaleEmail",
        ]
        assert kwargs["tool_choice"] == "auto"
        assert kwargs["api_key"] == "test-key"


class TestSaleTurn:
    """The model confirms a sale and sends the notification email."""

    @pytest.mark.asyncio
    async def test_lookup_then_email(self, agent, sender):
        sale_args = {
            "phone": "04141234567",
            "products": [
                {"id": "p-1", "code": "TK-1", "reference": "R1", "description": "Teclado mecánico RGB", "stock": 8, "retail_price": 45.0},
                {"id": "p-3", "code": "MS-1", "reference": "R3", "description": "Mouse óptico", "stock": 3, "retail_price": 9.5},
            ],
        }
        mock = AsyncMock(
            side_effect=[
                _response(
                    calls=[
                        ("call_1", "getProduct", {"code": "TK-1"}),
                        ("call_2", "getProduct", {"reference": "R3"}),
                    ]
                ),
                _response(calls=[("call_3", "sendSaleEmail", sale_args)]),
                _response(text="¡Listo! Tu pedido por $54.50 fue registrado."),
            ]
        )

        with patch(ACOMPLETION, new=mock):
            result = await agent.execute("quiero el teclado TK-1 y el mouse R3, mi teléfono es 04141234567")

        assert result.success is True
        assert result.tools_used == ["getProduct", "getProduct", "sendSaleEmail"]
        assert result.iterations == 2
        assert len(sender.sent) == 1
        assert sender.sent[0]["to"] == "ventas@example.com"
        assert "04141234567" in sender.sent[0]["html"]

        email_result = json.loads(mock.await_args_list[2].kwargs["messages"][-1]["content"])
        assert email_result["success"] is True
        assert email_result["data"]["total"] == 54.5


class TestFailures:
    """Failures inside a turn are reported, not raised."""

    @pytest.mark.asyncio
    async def test_bad_tool_arguments_are_fed_back(self, agent):
        mock = AsyncMock(
            side_effect=[
                _response(calls=[("call_1", "searchProducts", "{not json")]),
                _response(calls=[("call_2", "searchProducts", {"keywords": []})]),
                _response(text="¿Qué producto buscas?"),
            ]
        )

        with patch(ACOMPLETION, new=mock):
            result = await agent.execute("busca algo")

        assert result.success is True
        assert result.tools_used == ["searchProducts"]

        first = json.loads(mock.await_args_list[1].kwargs["messages"][-1]["content"])
        assert first == {"error": "Invalid JSON arguments"}
        second = json.loads(mock.await_args_list[2].kwargs["messages"][-1]["content"])
        assert second["success"] is False
        assert second["fields"] == ["keywords"]

    @pytest.mark.asyncio
    async def test_provider_rejection_ends_turn(self, agent):
        error = Exception("invalid api key")
        error.status_code = 401
        mock = AsyncMock(side_effect=error)

        with patch(ACOMPLETION, new=mock):
            result = await agent.execute("hola")

        assert result.success is False
        assert result.stop_reason == "error"
        assert result.error == "FatalAPIError"
        assert mock.await_count == 1


class TestCatalogFile:
    """load_product_store feeds the same store the tools read."""

    @pytest.mark.asyncio
    async def test_loaded_catalog_is_searchable(self, settings, sender, tmp_path):
        catalog = tmp_path / "catalog.json"
        catalog.write_text(
            json.dumps({"products": [{"code": "HD-1", "reference": "R9", "description": "Disco duro 1TB", "stock": 2}]}),
            encoding="utf-8",
        )
        factory = AgentComponents(settings)
        registry = factory.create_registry(products=load_product_store(catalog), notifier=sender)

        result = await registry.execute_tool("searchProducts", {"keywords": ["disco"]})

        assert result.success is True
        assert "Disco duro 1TB" in result.data

    @pytest.mark.asyncio
    async def test_top_level_list_catalog(self, tmp_path):
        catalog = tmp_path / "catalog.json"
        catalog.write_text(json.dumps([{"code": "HD-2", "reference": "R10", "description": "Disco SSD", "stock": 1}]), encoding="utf-8")

        store = load_product_store(catalog)

        assert (await store.get_product_by_identifier(ProductIdentifier(code="HD-2"))).description == "Disco SSD"

    def test_catalog_that_is_not_a_list_is_rejected(self, tmp_path):
        catalog = tmp_path / "catalog.json"
        catalog.write_text(json.dumps({"products": {"code": "HD-1"}}), encoding="utf-8")

        with pytest.raises(ValueError, match="Expected a list of products"):
            load_product_store(catalog)

    def test_no_path_gives_empty_store(self):
        assert isinstance(load_product_store(None), InMemoryProductStore)
