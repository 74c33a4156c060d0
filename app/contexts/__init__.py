"""
Bounded contexts of the campaigns service.

Each subpackage is one bounded context with its own application layer:

- application.py: Application Services (use case orchestration)
- Repositories: reuses app/repositories and app/services/*/repository.py
- Domain types: reuses app/services/*/types.py

Routes call only application services; they never touch Supabase or
repositories directly.
"""
