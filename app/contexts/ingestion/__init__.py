"""
Bounded Context: Data Ingestion

Responsibility: loading customers and orders in bulk, one result per
record, and the store-wide totals shown next to them.

Layers:
- application.py: Application Service (use case orchestration)
- Repositories live in app/repositories
"""
