"""Tests for record sources."""

import asyncio
import json

import pytest

from ai_comms.config import Agent
from ai_comms.errors import ConfigurationError
from ai_comms.records import FileRecordSource, StaticRecordSource, parse_records


class TestStaticRecordSource:
    @pytest.mark.asyncio
    async def test_returns_copies(self, openai_agent):
        source = StaticRecordSource(agents=[openai_agent])

        agents = await source.list_agents()
        agents[0].system_prompt = "changed"

        assert (await source.list_agents())[0].system_prompt == "You are a helpful assistant"

    @pytest.mark.asyncio
    async def test_empty(self):
        source = StaticRecordSource()
        assert await source.list_agents() == []
        assert await source.list_models() == []
        assert await source.list_providers() == []


class TestParseRecords:
    def test_not_a_mapping(self):
        with pytest.raises(ConfigurationError, match="mapping"):
            parse_records(["agents"])

    def test_invalid_record(self):
        with pytest.raises(ConfigurationError, match="Invalid records"):
            parse_records({"agents": [{"name": "no id"}]})

    def test_missing_sections_are_empty(self):
        source = parse_records({"agents": [{"id": 1, "model_id": 2}]})
        assert source.models == []
        assert source.providers == []
        assert isinstance(source.agents[0], Agent)


class TestFileRecordSource:
    @pytest.mark.asyncio
    async def test_yaml(self, tmp_records_file):
        source = FileRecordSource(tmp_records_file)

        providers = await source.list_providers()
        models = await source.list_models()
        agents = await source.list_agents()

        assert providers[0].secret_key == "sk-file"
        assert models[0].params == {"temperature": 0.2}
        assert models[0].endpoint == "/v1/chat/completions"
        assert agents[0].system_prompt == "Be brief."

    @pytest.mark.asyncio
    async def test_json(self, tmp_path):
        path = tmp_path / "records.json"
        path.write_text(json.dumps({
            "providers": [{"id": 2, "code": "anthropic", "url": "https://api.anthropic.com",
                           "authentication": "x-api-key"}],
            "models": [],
            "agents": [],
        }))

        providers = await FileRecordSource(path).list_providers()
        assert providers[0].authentication == "api-key-header"

    @pytest.mark.asyncio
    async def test_rereads_on_each_call(self, tmp_records_file):
        source = FileRecordSource(tmp_records_file)
        assert (await source.list_agents())[0].system_prompt == "Be brief."

        tmp_records_file.write_text(
            tmp_records_file.read_text().replace("Be brief.", "Be verbose.")
        )
        assert (await source.list_agents())[0].system_prompt == "Be verbose."

    @pytest.mark.asyncio
    async def test_concurrent_listings_parse_once(self, tmp_records_file, monkeypatch):
        import ai_comms.records as records

        calls = []
        real_safe_load = records.yaml.safe_load

        def counting_safe_load(text):
            calls.append(text)
            return real_safe_load(text)

        monkeypatch.setattr(records.yaml, "safe_load", counting_safe_load)
        source = FileRecordSource(tmp_records_file)

        agents, models, providers = await asyncio.gather(
            source.list_agents(), source.list_models(), source.list_providers()
        )

        assert len(calls) == 1
        assert (agents[0].id, models[0].id, providers[0].id) == (100, 10, 1)

    @pytest.mark.asyncio
    async def test_cached_records_are_copies(self, tmp_records_file):
        source = FileRecordSource(tmp_records_file)

        agents = await source.list_agents()
        agents[0].system_prompt = "changed"

        assert (await source.list_agents())[0].system_prompt == "Be brief."

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read"):
            FileRecordSource(tmp_path / "nope.yaml").load()

    def test_unparseable_file(self, tmp_path):
        path = tmp_path / "records.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="Cannot parse"):
            FileRecordSource(path).load()
