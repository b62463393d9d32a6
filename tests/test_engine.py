"""Tests for wiring the engine from a config file."""

import pytest
import responses
import yaml

from jsonld_engine.engine import SchemaEngine
from jsonld_engine.store import Post


@pytest.fixture
def engine(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text(yaml.dump({
        "store_path": str(tmp_path / "site.yaml"),
        "settings": {"deepseek_api_key": "sk-test"},
    }))
    return SchemaEngine(config_path=str(config))


class TestSchemaEngine:
    def test_components(self, engine, tmp_path):
        assert engine.store.state_path == str(tmp_path / "site.yaml")
        assert engine.registry.count() == 3
        assert engine.orchestrator.registry is engine.registry
        assert engine.scheduler.orchestrator is engine.orchestrator

    def test_unknown_provider(self, engine):
        with pytest.raises(ValueError, match="Unknown provider: nope"):
            engine.test_connection("nope")

    @responses.activate
    def test_generate_and_render(self, engine):
        engine.store.set_site_info("Acme", "https://acme.test")
        engine.store.save_post(Post(id=1, title="Home", content="<p>" + "Roof repair in Springfield. " * 3 + "</p>"))
        responses.add(
            responses.POST, "https://api.deepseek.com/v1/chat/completions",
            json={"choices": [{"message": {"content": '{"@context":"https://schema.org","@type":"WebPage"}'}}]},
            status=200,
        )
        assert engine.generate(1).success is True
        assert engine.render_head(1) == (
            '<script type="application/ld+json">{"@context":"https://schema.org","@type":"WebPage"}</script>'
        )
