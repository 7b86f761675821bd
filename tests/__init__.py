"""
Timeline Test Package

TEST AXIOMS:
=============
1. Fixtures are explicit: fixed timestamps and ids, no randomness
2. Async code runs under asyncio.run inside plain test functions
3. The live directory gateway is exercised only through httpx.MockTransport
"""
