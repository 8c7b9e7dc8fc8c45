# zamail/tests/__init__.py
"""
ZaMail: Test Suite

Run with pytest:
    pytest zamail/tests

Or module by module without pytest's runner:
    python -m zamail.tests.test_integration

Test coverage:
    - Wallet session tracking (connect, account/chain switches, restore)
    - FHEVM instance manager state machine and stale-creation discard
    - Decryption signature store (dedup, cache, storage, rejection)
    - MessageBoard gateways, deployments and the message codec
    - Coordinator capability flags, refresh, send and decrypt flows
    - End-to-end scenario on the offline devnet
"""
