"""Services package: storage backends and remote replication."""
