"""audit/ -- Append-only audit trail for privileged and mutating actions.

Layer rule: audit/ imports only core/ plus stdlib and third-party libraries.
auth/, tasks/ and api/ call into audit/, never the other way around.
"""
