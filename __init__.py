"""
Soundsible Ingest

Keeps a song catalog in sync with a music bucket on S3-compatible storage
(Cloudflare R2) or a local music directory: reads tags from the audio files,
resolves cover art and upserts every track into SQLite.

Repository Structure:
- ingest_tool/: Object stores, scanner pipeline, scheduler, HTTP trigger and CLI
- shared/: Shared configuration, models, constants, errors and the catalog database
- tests/: Unit and integration tests

License: MIT
"""
