"""auth/ -- Passwordless email-code login for Roster.

codes.py issues verification codes, login.py redeems them for a session token,
audit.py records every attempt, tokens.py signs and checks the JWTs, and
dependencies.py turns a bearer token back into a Subject for route handlers.

Layer rule: auth/ may import from core/, cache/, directory/, and mail/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
