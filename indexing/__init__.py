from indexing.data_index import DataIndexer, IndexCache, find_column_by_header
from indexing.semantic import infer_semantic_type
from indexing.summary import build_context, format_data_index, format_lightweight_index

__all__ = [
    "DataIndexer",
    "IndexCache",
    "build_context",
    "find_column_by_header",
    "format_data_index",
    "format_lightweight_index",
    "infer_semantic_type",
]
