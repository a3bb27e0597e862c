"""
Test suite for Carbon AVS

Unit tests for registry clients, aggregation, the verification coordinator,
publishing, ledgers, the contract listener, the API and the CLI. No test
touches a real registry, ledger or chain.
"""
