"""Services package."""
from src.services.aggregation import AggregationError, AggregationService, TestNotFoundError, build_result
from src.services.competitive_share import recompute_competitive_shares, reconstruct_test_product_selections
from src.services.document_composer import MissingPrerequisiteError, compose_sections, included_variants, pdf_filename
from src.services.excel_exporter import ExcelExporter, export_filename
from src.services.insight_cache import InsightCache, InsightLoader
from src.services.insight_client import InsightClient, InsightEndpointError, normalize_ai_insight
from src.services.pdf_renderer import PdfReportExporter
from src.services.result_store import ResultStore, ResultStoreError

__all__ = [
    "AggregationError",
    "AggregationService",
    "TestNotFoundError",
    "build_result",
    "recompute_competitive_shares",
    "reconstruct_test_product_selections",
    "MissingPrerequisiteError",
    "compose_sections",
    "included_variants",
    "pdf_filename",
    "ExcelExporter",
    "export_filename",
    "InsightCache",
    "InsightLoader",
    "InsightClient",
    "InsightEndpointError",
    "normalize_ai_insight",
    "PdfReportExporter",
    "ResultStore",
    "ResultStoreError",
]
