"""
============================================================================
SiteLedger - Services Layer
============================================================================

Transactional domain services. Each public write operation runs on the
caller's SQLAlchemy session and commits once at the end; helpers used
inside another operation only flush.

============================================================================
"""
