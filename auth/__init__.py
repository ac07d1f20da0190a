"""auth/ -- Identity, credential and session engine for authcore.

Entry point is auth.core.Auth, constructed over any StorageAdapter
(auth/adapter.py). Reference adapters: auth.store.SQLAlchemyAdapter and
auth.memory.MemoryAdapter.

Layer rule: auth/ imports stdlib, third-party libraries and core/ only.
"""
