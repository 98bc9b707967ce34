"""Infrastructure Layer — storage, collaborator clients and cross-cutting concerns.

Invariants:
    - Infrastructure imports only errors, domain types and protocols from core/
    - All external calls wrapped with retry/timeout/error mapping

Design Decisions:
    - Resilient wrappers over raw clients (ADR: single responsibility)
"""
