"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the restaking harness.
Any compliant ledger and harness MUST pass these tests.

The tests are organized by invariant:
1. share_accounting.py - Deposit conversion, operator sums, bystanders
2. snapshot_roundtrip.py - Time travel leaves the present intact
3. withdrawal_identity.py - Content-addressed roots and delay gating
4. native_delegation.py - Clamped native-stake operator deltas
5. checkpoint_lifecycle.py - Proof counting and finalize accounting
6. seeded_runs.py - Reproducible behavior from a seed

These tests use hypothesis for property-based testing.
"""
