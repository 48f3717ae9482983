"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the obligation engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - Failed invocations leave no trace
2. idempotency.py - Sweeping twice at one timestamp executes nothing twice
3. sum_invariant.py - Total open equals the sum of OPEN amounts
4. missed_boundaries.py - Catch-up arithmetic and schedule monotonicity

These tests use hypothesis for property-based testing.
"""
