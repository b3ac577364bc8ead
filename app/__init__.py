"""User sync service package.

To build a fully wired service:
    from app.bootstrap import create_user_service

To use the remote client only:
    from app.core.remote import RemoteAdminClient, RemoteUserService
"""
