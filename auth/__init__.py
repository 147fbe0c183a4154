"""auth/ -- Identity, tokens and the authorization engine for TaskHub.

Layer rule: auth/ imports only core/, audit/ (identity.py records user
management actions) plus stdlib and third-party libraries. It does NOT import
from api/ or tasks/store.py. api/ imports from auth/, not the other way around.
"""
