"""
Ingest Package
==============

Upload decoding and table detection.

Components:
    - FileTypeDetector: Magic-byte/extension file classification
    - TabularParser: XLSX/CSV decoding into a Workbook
    - TableSegmenter: Splits sheets into independent tables
"""

from setup_assistant.ingest.file_type_detector import FileTypeDetector, get_extension
from setup_assistant.ingest.table_segmenter import TableSegmenter
from setup_assistant.ingest.tabular_parser import TabularParser

__all__ = [
    "FileTypeDetector",
    "get_extension",
    "TabularParser",
    "TableSegmenter",
]
