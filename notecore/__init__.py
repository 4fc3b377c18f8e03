# Note Core
#
# Modular package structure:
# - config.py: Settings (pydantic-settings) and the global settings instance
# - logging.py: structlog configuration
# - utils.py: Regex patterns, exceptions, validation and small helpers
# - models.py: Pydantic models for notes, tasks, log entries and queries
# - vault.py: FileSystemVault for reading and writing Markdown notes
# - parser.py: NoteParser protocol and the regex line-scan parser
# - locks.py: Reader/writer lock guarding the index
# - index.py: InMemoryIndexStore with per-note snapshots
# - manager.py: VaultIndexManager for full and incremental reindexing
# - domain.py: Domain query/command API
# - rpc.py: JSON-RPC 2.0 envelopes, error codes and param models
# - server.py: RpcGateway dispatch and stream loops
# - main.py: Entry point and daemon initialization

__version__ = "0.1.0"
