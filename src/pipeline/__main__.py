"""
CLI entry point for the legal analysis pipeline.

Output layout:
    data/
    ├── store/                                  # JsonFileStore tables
    │   ├── legal_analyses.json
    │   └── legal_term_sources.json
    └── runs/
        └── {pipeline_id}.json                  # Final PipelineState (default --output)
    logs/
    ├── failed_documents.json                   # FailedDocumentLog
    └── pipeline_{YYYYMMDD_HHMMSS}.log          # ProgressLogger output

Usage:
    python -m src.pipeline TermSheet.pdf SHA.docx SideLetter.docx --company-name "Acme Ltd"
    python -m src.pipeline deal/*.docx --dry-run --concurrency 2
    python -m src.pipeline deal/*.pdf --output results/acme.json --quiet
"""

import argparse
import asyncio
import base64
import json
import logging
import sys
from pathlib import Path
from typing import List

from src.config import ensure_directories, settings, utc_now
from src.legal.constants import PipelineStatus
from src.legal.models import PipelineStartRequest, UploadedFile
from src.services.extraction_service import OpenAIExtractionService
from src.services.store import JsonFileStore
from src.utils.dead_letter_queue import FailedDocumentLog
from src.utils.progress_logger import PipelineProgressReporter, ProgressLogger

from .orchestrator import LegalAnalysisPipeline, PipelineCallbacks, default_prompt_provider, get_pipeline_summary

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_request(paths: List[Path], company_name=None, company_id=None, dry_run=False) -> PipelineStartRequest:
    """Read files from disk into a start request."""
    files = [
        UploadedFile(filename=path.name, file_base64=base64.b64encode(path.read_bytes()).decode('ascii'))
        for path in paths
    ]
    return PipelineStartRequest(
        files=files,
        company_name=company_name,
        company_id=company_id,
        dry_run=dry_run,
    )


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(
        description="Legal due-diligence pipeline: quick scan -> category analysis -> synthesis"
    )
    ap.add_argument('files', nargs='+', help='PDF or Word documents of one deal')
    ap.add_argument('--company-name', type=str, default=None, dest='company_name')
    ap.add_argument('--company-id', type=str, default=None, dest='company_id')
    ap.add_argument('--dry-run', action='store_true', dest='dry_run',
                    help='Run all phases but do not persist results')
    ap.add_argument('--concurrency', type=int, default=None,
                    help=f'Phase 1 window size (default: {settings.pipeline.concurrency})')
    ap.add_argument('--output', type=str, default=None,
                    help='Where to write the final state JSON (default: data/runs/{pipeline_id}.json)')
    ap.add_argument('--progress-log', type=str, default=None, dest='progress_log',
                    help='Progress log path (default: logs/pipeline_{timestamp}.log)')
    ap.add_argument('--quiet', action='store_true', help='Minimize console output')
    args = ap.parse_args(argv)

    paths = [Path(p) for p in args.files]
    missing = [str(p) for p in paths if not p.is_file()]
    if missing:
        print(f"File(s) not found: {', '.join(missing)}", file=sys.stderr)
        return 1

    ensure_directories()
    run_settings = settings
    if args.concurrency is not None:
        if args.concurrency < 1:
            print("--concurrency must be at least 1", file=sys.stderr)
            return 1
        run_settings = settings.model_copy(update={
            'pipeline': settings.pipeline.model_copy(update={'concurrency': args.concurrency}),
        })

    progress_path = Path(args.progress_log) if args.progress_log else (
        settings.paths.logs_dir / f"pipeline_{utc_now().strftime('%Y%m%d_%H%M%S')}.log"
    )

    store = JsonFileStore(settings.paths.store_dir)
    pipeline = LegalAnalysisPipeline(
        OpenAIExtractionService(),
        prompts=default_prompt_provider(store),
        store=store,
        settings=run_settings,
        failure_log=FailedDocumentLog(settings.paths.dead_letter_path),
    )
    request = build_request(paths, args.company_name, args.company_id, args.dry_run)

    with ProgressLogger(progress_path, console=not args.quiet) as progress:
        progress.section(f"Legal analysis: {len(paths)} document(s)")
        callbacks = PipelineCallbacks.from_handler(PipelineProgressReporter(progress))
        state = asyncio.run(pipeline.run(request, callbacks=callbacks))

    output_path = Path(args.output) if args.output else settings.paths.runs_dir / f"{state.id}.json"
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(state.model_dump_json(indent=2, exclude={'phase1_results': {'__all__': {'extracted_text'}}}),
                           encoding='utf-8')

    summary = get_pipeline_summary(state)
    print(json.dumps(summary, indent=2))
    print(f"\nFull state written to: {output_path}")
    return 0 if state.status == PipelineStatus.COMPLETE else 1


if __name__ == '__main__':
    sys.exit(main())
