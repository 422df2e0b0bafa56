"""audit/ -- Append-only access and authentication event trail.

Layer rule: audit/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, web/, auth/, or catalog/.
auth/ and api/ import from audit/, not the other way around.
"""
