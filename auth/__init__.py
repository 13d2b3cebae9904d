"""
auth/ -- Identity, sessions, permission ledger, and API keys for Postboard.

Layer rule: auth/ imports only core/, stdlib, and third-party libraries.
It does NOT import from api/, openings/, or audit/.
api/ imports from auth/, not the other way around.
"""
