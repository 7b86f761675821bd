"""
Tenant Timeline Backend

This package implements the core of a multi-tenant event-timeline publisher.
Tenants own roads; roads are timelines of dated addresses. Access to a road
is decided against a cached mirror of an external directory's security
groups.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Responsibility: Shared data types, error taxonomy, audit entries
   - MUST NOT: Perform I/O or hold state

2. STORAGE LAYER (storage/)
   - Responsibility: File-tree persistence of tenants, roads and addresses
   - Outputs: Tenant, Road (deserialized manifests)
   - MUST NOT: Make access decisions, talk to the directory

3. DIRECTORY LAYER (directory/)
   - Responsibility: Gateway to the identity directory, group naming,
     periodically refreshed membership cache
   - MUST NOT: Touch the on-disk tree

4. AUTHORIZATION (authorization/)
   - Responsibility: Map (email, tenant, road) to an access level
   - Allowed inputs: The membership cache only
   - MUST NOT: Raise on directory failures (absorbed as "not a member")

5. TENANT MANAGER (manager.py, provisioning.py)
   - Responsibility: Single entry point for tenant/road reads and writes,
     keeps reserved directory groups in sync with creation

6. API (api/)
   - Responsibility: Thin HTTP glue over the manager and resolver

CONSTRAINTS ENFORCED:
=====================
- The on-disk tree is mutated only by the store, under its lock
- The membership cache is mutated only by its own refresh routine
- One corrupt manifest never aborts a listing
- A directory outage degrades access, it never crashes a request
"""

__version__ = "0.1.0"
