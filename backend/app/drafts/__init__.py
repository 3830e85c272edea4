"""
Draft-review persistence across storage tiers.

Provides:
- Browser-tier slots per listing (LocalDraftStore)
- Cookie-tier drafts and the draft manifest (CookieDraftStore)
- Durable per-author drafts (DraftRepository)
- Promotion of anonymous drafts after sign-in (MigrationCoordinator)
- Retention sweeps
"""
