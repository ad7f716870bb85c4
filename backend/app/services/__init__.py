"""Services Layer — stores, the reconciler, share offers, refinement, and wiring.

Invariants:
    - Stores return records from core/records.py, never ORM instances
    - Pure decisions live in core/; services do IO and raise typed errors

Design Decisions:
    - One module per concern, wired by constructor injection in engine_factory.py
      (ADR: no god objects)
"""
