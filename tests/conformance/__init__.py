"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the client ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Balance identities and conservation of funds
2. atomicity.py - All-or-nothing transaction semantics
3. idempotency.py - Duplicate deposit ids and repeated references
4. determinism.py - Reproducible behavior, sequential vs sharded

These tests use hypothesis for property-based testing.
"""
