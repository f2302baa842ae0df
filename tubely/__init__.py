"""Tubely media backend.

Ingests uploaded videos and thumbnails, remuxes videos for fast-start
playback, stores them in object storage and serves signed URLs.

Modules:
    - core: Configuration, database, storage, logging, errors
    - modules.auth: Bearer token validation
    - modules.video: Video records
    - modules.media: Ingestion pipeline (stage, probe, remux, upload, link)
"""

__version__ = "0.1.0"
