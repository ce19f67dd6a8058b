"""Core (UI-agnostic) capacity planning logic.

This package contains:
- source loading (roster + allocation CSVs -> pandas) and record normalization
- business-day counting and reporting period resolution
- allocation selection, prorating and category classification
- utilization rollups (JSON-serializable payloads) and the CSV export
- chart helpers (Altair -> Vega-Lite spec dict)
"""
