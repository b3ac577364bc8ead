"""Core Business Logic Module

User lifecycle and authorization-scoped queries, independent of any HTTP
framework.

Module Structure:
    - remote/           : Remote user-management client, envelope normalizer, mirrored ops
    - models.py         : SQLAlchemy models (users, roles, depts, jobs, user areas)
    - repository.py     : Persistence access over a SQLAlchemy session
    - filters.py        : Filter clauses and their compiler
    - areas.py          : Area scopes and the scope resolver
    - user_query.py     : Scoped and criteria-based listing
    - cache.py          : Redis cache invalidation
    - sessions.py       : Online session eviction
    - user_service.py   : Create / update / delete orchestration
    - errors.py         : Service error taxonomy

Usage Pattern:
    Import explicitly when needed:
        from app.core.user_service import UserService
        from app.core.user_query import ScopedCriteria, PageRequest
        from app.core.areas import AreaScope, PeerScope
"""
