"""
Legal Document Analysis Pipeline - Test Suite

Test modules organized by functionality:
- unit/test_classifier, test_extractor, test_grouping - Document handling
- unit/test_models, test_sources - Reply parsing and audit trail
- unit/test_phase1, test_phase2, test_phase3, test_grouped - Pipeline phases
- unit/test_orchestrator - End-to-end runs against a scripted service
"""
