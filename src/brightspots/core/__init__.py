"""
Core data and analytics layer.

This package contains:
- scoring: interest levels and the weighted score
- fields: survey column mapping and the normalized SurveyRecord
- transport: JSON over HTTP (or local files) with retries
- record_store: loaded records, theme catalog, primary-record index
- delta_sync: per-record delta files (pull / merge / push)
- analytics: summaries, tag frequencies, interest rollups, company groupings
- theme_manager: company theme assessments and legacy migration
- interest_manager: interest detail notes per company and topic
- session: query-string config and the load sequence used by the UI
"""
