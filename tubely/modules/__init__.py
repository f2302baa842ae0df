"""Application modules.

- auth: JWT bearer token validation
- video: Video records and their API
- media: Media ingestion pipeline and upload API
"""
