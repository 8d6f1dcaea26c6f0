"""
Saving a finished pipeline run to a DocumentStore.

One `legal_analyses` record per run (upserted on pipeline_id) and one
`legal_term_sources` row per source-bearing value.
"""

import logging
from typing import Any, Dict, List, Optional

from src.legal.exceptions import StoreError
from src.legal.models import PipelineState
from src.legal.sources import collect_source_locations
from src.services.store import LEGAL_ANALYSES_TABLE, LEGAL_TERM_SOURCES_TABLE, DocumentStore

from .phase3 import majority_jurisdiction

logger = logging.getLogger(__name__)


def _document_name(state: PipelineState) -> str:
    filenames = [r.filename for r in state.phase1_results if r.is_complete]
    return ' + '.join(filenames or [r.filename for r in state.phase1_results])


def build_analysis_record(state: PipelineState) -> Dict[str, Any]:
    """Flatten a run into the `legal_analyses` record shape."""
    phase3 = state.phase3_result
    jurisdiction = phase3.jurisdiction if phase3 else majority_jurisdiction(state.phase1_results)
    return {
        'pipeline_id': state.id,
        'company_id': state.config.company_id,
        'document_name': _document_name(state),
        'document_type': phase3.instrument_type.value if phase3 else None,
        'jurisdiction': jurisdiction.value,
        'analysis': {
            'pipeline_id': state.id,
            'phase1': [r.model_dump(mode='json', exclude={'extracted_text'}) for r in state.phase1_results],
            'phase2': [r.model_dump(mode='json') for r in state.phase2_results],
            'phase3': phase3.model_dump(mode='json') if phase3 else None,
        },
        'executive_summary': [p.model_dump(mode='json') for p in phase3.executive_summary] if phase3 else [],
        'flags': phase3.flag_summary.model_dump(mode='json') if phase3 else None,
    }


def build_term_source_rows(state: PipelineState, analysis_id: str) -> List[Dict[str, Any]]:
    rows = []
    for source in collect_source_locations(state):
        rows.append({
            'analysis_id': analysis_id,
            'section': source.section,
            'term_key': source.term_key,
            'extracted_value': source.extracted_value,
            'source_document': source.source_document,
            'page_number': source.page_number,
            'snippet_url': None,
            'bbox': source.bbox.model_dump() if source.bbox else None,
            'confidence': source.confidence,
            'quote': source.quote,
        })
    return rows


def save_pipeline_results(store: DocumentStore, state: PipelineState) -> Optional[str]:
    """
    Persist a run and its audit trail.

    Skipped for dry runs. Store failures are logged and give None; they
    never fail the run.

    Args:
        store: Target document store
        state: Finished pipeline state

    Returns:
        Id of the `legal_analyses` record, or None when nothing was saved
    """
    if state.config.dry_run:
        logger.info("Dry run %s: results not persisted", state.id)
        return None

    try:
        record = store.upsert(LEGAL_ANALYSES_TABLE, build_analysis_record(state), 'pipeline_id')
        analysis_id = record['id']
        rows = build_term_source_rows(state, analysis_id)
        if rows:
            store.insert(LEGAL_TERM_SOURCES_TABLE, rows)
    except (StoreError, OSError, KeyError, TypeError) as e:
        logger.error("Failed to persist pipeline %s: %s", state.id, e)
        return None

    logger.info("Saved analysis %s with %d source row(s)", analysis_id, len(rows))
    return analysis_id
