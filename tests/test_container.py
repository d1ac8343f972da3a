"""
Tests for postgen/container.py - service wiring from settings.
"""
import pytest

from postgen.container import ServiceContainer
from postgen.errors import ExternalServiceError
from postgen.main import create_app
from postgen.schemas.brand import DEFAULT_BRAND_MEMORY
from postgen.schemas.session import PassName
from postgen.services.llm import AnthropicLLMClient
from postgen.services.session_cache import InMemorySessionCache
from postgen.services.vector_store import InMemoryVectorStore


class TestFromSettings:
    def test_no_keys_builds_local_services_only(self, test_settings):
        settings = test_settings.model_copy(update={
            "anthropic_api_key": "",
            "openai_api_key": "",
            "perplexity_api_key": "",
        })
        container = ServiceContainer.from_settings(settings)
        assert isinstance(container.session_cache, InMemorySessionCache)
        assert isinstance(container.vector_store, InMemoryVectorStore)
        assert container.llm is None
        assert container.similarity is None
        assert container.research is None

    def test_keys_enable_providers(self, test_settings):
        settings = test_settings.model_copy(update={
            "anthropic_api_key": "sk-ant-test",
            "openai_api_key": "",
            "default_language": "english",
            "similarity_threshold": 0.9,
        })
        container = ServiceContainer.from_settings(settings)
        assert isinstance(container.llm, AnthropicLLMClient)
        assert container.brand.language == "english"

    def test_similarity_uses_configured_threshold(self, test_settings):
        settings = test_settings.model_copy(update={"openai_api_key": "sk-test", "similarity_threshold": 0.9})
        container = ServiceContainer.from_settings(settings)
        assert container.similarity.default_threshold == 0.9


class TestAccessors:
    def test_require_llm_raises_when_missing(self, container):
        container.llm = None
        with pytest.raises(ExternalServiceError):
            container.require_llm()

    def test_require_similarity_raises_when_missing(self, container):
        container.similarity = None
        with pytest.raises(ExternalServiceError):
            container.require_similarity()

    def test_pipeline_uses_container_services(self, container):
        pipeline = container.pipeline("multipass")
        assert pipeline.similarity is container.similarity
        assert pipeline.rag_limit == container.settings.rag_limit
        assert pipeline.pass_names[0] == PassName.RESEARCH

    async def test_aclose_closes_llm(self, container, fake_llm):
        await container.aclose()
        assert fake_llm.closed is True


class TestDefaults:
    def test_brand_defaults_to_a_copy_of_default_memory(self, test_settings, session_cache):
        container = ServiceContainer(
            settings=test_settings,
            session_cache=session_cache,
            vector_store=InMemoryVectorStore(),
        )
        assert container.brand == DEFAULT_BRAND_MEMORY
        assert container.brand is not DEFAULT_BRAND_MEMORY

    def test_app_module_builds_with_container(self, container):
        app = create_app(container)
        assert app.state.container is container
