"""Unit tests for src/services/store.py — document store backends."""

import json

import pytest

from src.legal.exceptions import StoreError
from src.services.store import (
    LEGAL_CONFIG_TABLE,
    DocumentStore,
    InMemoryStore,
    JsonFileStore,
    StorePromptProvider,
)


@pytest.fixture(params=['memory', 'json'])
def store(request, tmp_path):
    if request.param == 'memory':
        return InMemoryStore()
    return JsonFileStore(tmp_path / 'store')


class TestStoreContract:
    """Behaviour shared by every backend."""

    def test_satisfies_protocol(self, store):
        assert isinstance(store, DocumentStore)

    def test_upsert_inserts_then_updates(self, store):
        first = store.upsert('legal_analyses', {'pipeline_id': 'run-1', 'jurisdiction': 'US'}, 'pipeline_id')
        second = store.upsert('legal_analyses', {'pipeline_id': 'run-1', 'jurisdiction': 'UK'}, 'pipeline_id')

        assert first['id'] == second['id']
        assert 'created_at' in first
        assert 'updated_at' in second
        rows = store.select('legal_analyses')
        assert len(rows) == 1
        assert rows[0]['jurisdiction'] == 'UK'

    def test_upsert_composite_key(self, store):
        store.upsert('t', {'a': 1, 'b': 1, 'v': 'x'}, ['a', 'b'])
        store.upsert('t', {'a': 1, 'b': 2, 'v': 'y'}, ['a', 'b'])
        assert len(store.select('t')) == 2

    def test_upsert_missing_key_field(self, store):
        with pytest.raises(StoreError):
            store.upsert('t', {'other': 1}, 'pipeline_id')

    def test_insert_and_filtered_select(self, store):
        stored = store.insert('legal_term_sources', [
            {'analysis_id': 'a1', 'term_key': 'board_seats'},
            {'analysis_id': 'a2', 'term_key': 'valuation_cap'},
        ])
        assert all('id' in row for row in stored)
        assert [r['term_key'] for r in store.select('legal_term_sources', {'analysis_id': 'a2'})] == ['valuation_cap']

    def test_select_unknown_table(self, store):
        assert store.select('nothing_here') == []

    def test_returned_records_are_copies(self, store):
        record = store.upsert('t', {'k': 1, 'nested': {'x': 1}}, 'k')
        record['nested']['x'] = 99
        assert store.select('t')[0]['nested']['x'] == 1


class TestJsonFileStore:
    def test_tables_are_json_files(self, tmp_path):
        store = JsonFileStore(tmp_path / 'store')
        store.insert('legal_analyses', [{'pipeline_id': 'run-1'}])
        data = json.loads((tmp_path / 'store' / 'legal_analyses.json').read_text(encoding='utf-8'))
        assert data[0]['pipeline_id'] == 'run-1'

    def test_survives_reopen(self, tmp_path):
        JsonFileStore(tmp_path).insert('t', [{'v': 1}])
        assert JsonFileStore(tmp_path).select('t')[0]['v'] == 1

    def test_corrupt_table_raises_store_error(self, tmp_path):
        (tmp_path / 't.json').write_text('{{{', encoding='utf-8')
        with pytest.raises(StoreError):
            JsonFileStore(tmp_path).select('t')

    def test_non_list_table_raises_store_error(self, tmp_path):
        (tmp_path / 't.json').write_text('{"a": 1}', encoding='utf-8')
        with pytest.raises(StoreError):
            JsonFileStore(tmp_path).select('t')


class TestStorePromptProvider:
    def test_reads_override(self):
        store = InMemoryStore()
        store.upsert(LEGAL_CONFIG_TABLE, {'key': 'synthesis_prompt', 'content': 'Be brief.'}, 'key')
        provider = StorePromptProvider(store)
        assert provider.get('synthesis_prompt') == 'Be brief.'
        assert provider.get('economics_prompt') is None

    def test_blank_override_ignored(self):
        store = InMemoryStore()
        store.upsert(LEGAL_CONFIG_TABLE, {'key': 'phase1_prompt', 'content': '   '}, 'key')
        assert StorePromptProvider(store).get('phase1_prompt') is None

    def test_lookups_are_cached(self):
        store = InMemoryStore()
        store.upsert(LEGAL_CONFIG_TABLE, {'key': 'phase1_prompt', 'content': 'v1'}, 'key')
        provider = StorePromptProvider(store)
        assert provider.get('phase1_prompt') == 'v1'
        store.upsert(LEGAL_CONFIG_TABLE, {'key': 'phase1_prompt', 'content': 'v2'}, 'key')
        assert provider.get('phase1_prompt') == 'v1'

    def test_store_error_means_no_override(self, tmp_path):
        (tmp_path / f'{LEGAL_CONFIG_TABLE}.json').write_text('broken', encoding='utf-8')
        assert StorePromptProvider(JsonFileStore(tmp_path)).get('phase1_prompt') is None
