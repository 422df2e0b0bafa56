"""auth/ -- Credential verification, tokens, the edge gate and the authorization guard.

Layer rule: auth/ imports stdlib, third-party libraries, core/ and audit/.
It does NOT import from api/, web/, or catalog/.
api/ and web/ import from auth/, not the other way around.
"""
