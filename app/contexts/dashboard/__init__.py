"""
Bounded Context: Dashboard

Responsibility: read-only overview of the store and the user's
campaigns (totals, recent activity, daily trends).

Layers:
- application.py: Application Service (use case orchestration)
- Repositories live in app/repositories and app/services/campaigns
"""
