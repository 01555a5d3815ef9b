"""
Setup Assistant Service
=======================

Financial document intake for professional-services teams.

Features:
- Spreadsheet/CSV parsing with multi-table sheet segmentation
- AI-assisted table classification and column mapping
- Locale-aware (pt-BR) currency and date normalization
- Vision extraction for PDFs and images
- Team-scoped bulk creation of contracts, receivables and expenses

"""

__version__ = "1.0.0"
