"""
Storage module for generated images (Cloudflare R2 or inline).
"""
from app.storage.r2_client import get_r2_client, R2Client
from app.storage.artifacts import ArtifactStore, R2_REF_PREFIX

__all__ = ["get_r2_client", "R2Client", "ArtifactStore", "R2_REF_PREFIX"]
