"""
Bounded Context: Audience Campaigns

Responsibility: previewing audiences, creating campaigns and running
their simulated delivery.

Layers:
- application.py: Application Service (use case orchestration)
- Domain services and repositories live in app/services/segments and
  app/services/campaigns
"""
