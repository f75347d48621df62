"""Remote replication package."""

from vozfinancas.services.sync.remote import RemoteSyncClient, ReplicationError

__all__ = ["RemoteSyncClient", "ReplicationError"]
